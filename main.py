from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from config import get_settings
from core.sync_coordinator import SyncCoordinator
from api import rooms, players, devices, sync


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 建立 process 內唯一的同步引擎
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app.state.coordinator = SyncCoordinator(settings)
    yield
    # Shutdown: 所有狀態都在記憶體中，不需要額外清理


app = FastAPI(
    title="Crypto Party Sync API",
    description="State synchronization and conflict resolution for multiplayer crypto party rooms",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(rooms.router)
app.include_router(players.router)
app.include_router(devices.router)
app.include_router(sync.router)


@app.get("/")
def root():
    return {"message": "Crypto Party Sync API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
