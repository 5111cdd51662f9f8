"""
Room API Endpoints

職責：
1. 建立 / 列出 / 關閉房間
2. 查詢房間快照與排行榜
3. 價格更新
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
import logging

from api.deps import get_coordinator
from core.exceptions import RoomNotFound, RoomAlreadyExists, ReentrantMutationError
from core.sync_coordinator import SyncCoordinator
from models import RankedPlayer, RoomState
from schemas import RoomCreate, RoomResponse, RoomListResponse, PriceTick

router = APIRouter(prefix="/api/rooms", tags=["rooms"])
logger = logging.getLogger(__name__)


@router.post("", response_model=RoomResponse, status_code=201)
def create_room(
    room_data: Optional[RoomCreate] = None,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """
    建立房間

    沒有指定 roomCode 時自動生成 6 位代碼
    """
    try:
        ledger = coordinator.rooms.create_room(room_data.room_code if room_data else None)
        return RoomResponse(room_code=ledger.room_code, version=ledger.version)

    except RoomAlreadyExists as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("", response_model=RoomListResponse)
def list_rooms(coordinator: SyncCoordinator = Depends(get_coordinator)):
    return RoomListResponse(rooms=coordinator.rooms.room_codes())


@router.get("/{code}/state", response_model=RoomState)
def get_room_state(code: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    try:
        return coordinator.rooms.get(code).get_state()
    except RoomNotFound:
        raise HTTPException(status_code=404, detail="Room not found")


@router.get("/{code}/leaderboard", response_model=List[RankedPlayer])
def get_leaderboard(code: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    """
    排行榜：依 totalValue 由高到低，rank 從 1 開始不重複
    """
    try:
        return coordinator.rooms.get(code).get_all_players()
    except RoomNotFound:
        raise HTTPException(status_code=404, detail="Room not found")


@router.put("/{code}/prices", response_model=RoomState)
def update_prices(
    code: str,
    tick: PriceTick,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """
    價格更新（整張價格表取代）

    所有玩家的 portfolioValue / totalValue 會依新價格重新計算
    """
    try:
        return coordinator.apply_price_tick(code, tick.prices)

    except RoomNotFound:
        raise HTTPException(status_code=404, detail="Room not found")
    except ReentrantMutationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update prices for room {code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.delete("/{code}", status_code=204)
def close_room(code: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    if not coordinator.close_room(code):
        raise HTTPException(status_code=404, detail="Room not found")
