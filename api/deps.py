from fastapi import Request

from core.sync_coordinator import SyncCoordinator


def get_coordinator(request: Request) -> SyncCoordinator:
    """
    FastAPI dependency：提供 process 內唯一的 SyncCoordinator

    由 main.py 的 lifespan 建立並掛在 app.state 上
    """
    return request.app.state.coordinator
