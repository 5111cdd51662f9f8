"""
Player API Endpoints

職責：
1. 玩家狀態更新（不可信任的 partial 資料）
2. 查詢 / 移除玩家
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
import logging

from api.deps import get_coordinator
from core.exceptions import (
    RoomNotFound,
    PlayerNotFound,
    InvalidPlayerData,
    ReentrantMutationError,
)
from core.sync_coordinator import SyncCoordinator
from models import PlayerRecord
from schemas import PlayerUpdateResponse
from services.conflict_service import fingerprint

router = APIRouter(prefix="/api/rooms", tags=["players"])
logger = logging.getLogger(__name__)


@router.put("/{code}/players/{player_id}", response_model=PlayerUpdateResponse)
def update_player(
    code: str,
    player_id: str,
    payload: Dict[str, Any] = Body(...),
    device_id: Optional[str] = Query(None),
    version: Optional[int] = Query(None),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """
    更新玩家狀態

    流程：
    1. 房間不存在時自動建立
    2. 驗證 + 正規化（不合法 -> 400，原本的資料不變）
    3. totalValue 與組成不一致時自動修正
    4. 有 device_id 時同步登記裝置快照（可能產生 conflict）

    參數：
        code: 房間代碼
        player_id: 玩家 ID
        payload: name / cashBalance / portfolioValue / totalValue / portfolio / avatar
        device_id: 回報的裝置（query parameter）
        version: 裝置端序號（query parameter）
    """
    try:
        record = coordinator.apply_player_update(
            code, player_id, payload, device_id=device_id, version=version
        )
        if record is None:
            raise InvalidPlayerData(f"Invalid player data for {player_id}")

        ledger = coordinator.rooms.get(code)
        return PlayerUpdateResponse(
            accepted=True,
            version=ledger.version,
            fingerprint=fingerprint(record),
            player=record,
        )

    except InvalidPlayerData as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ReentrantMutationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update player {player_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{code}/players/{player_id}", response_model=PlayerRecord)
def get_player(code: str, player_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    try:
        player = coordinator.rooms.get(code).get_player(player_id)
        if player is None:
            raise PlayerNotFound(player_id)
        return player

    except RoomNotFound:
        raise HTTPException(status_code=404, detail="Room not found")
    except PlayerNotFound:
        raise HTTPException(status_code=404, detail="Player not found")


@router.delete("/{code}/players/{player_id}", status_code=204)
def remove_player(code: str, player_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    try:
        coordinator.rooms.get(code).remove_player(player_id)

    except RoomNotFound:
        raise HTTPException(status_code=404, detail="Room not found")
    except ReentrantMutationError as e:
        raise HTTPException(status_code=409, detail=str(e))
