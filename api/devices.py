"""
Device API Endpoints

職責：
1. 登記裝置快照（和同一台裝置上一次的快照比對）
2. 查詢裝置 / 玩家的所有裝置
3. 衝突紀錄與一致性檢查
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
import logging

from api.deps import get_coordinator
from core.exceptions import DeviceNotFound, ReentrantMutationError
from core.sync_coordinator import SyncCoordinator
from models import Conflict, ConsistencyReport, DeviceSnapshot
from schemas import ClearResponse, DeviceIdResponse, DeviceRegisterResponse
from services.naming_service import generate_device_id

router = APIRouter(prefix="/api", tags=["devices"])
logger = logging.getLogger(__name__)


@router.post("/devices", response_model=DeviceIdResponse, status_code=201)
def new_device_id(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """發一個新的裝置 ID 給第一次連線的客戶端"""
    return DeviceIdResponse(device_id=generate_device_id(coordinator.clock()))


@router.post("/devices/snapshots", response_model=DeviceRegisterResponse)
def register_snapshot(snapshot: DeviceSnapshot, coordinator: SyncCoordinator = Depends(get_coordinator)):
    """
    登記裝置快照

    返回：
        conflict: 和上一份快照的差異（沒有則為 null）

    注意：
        resolution 只是建議，新快照一定會被儲存
    """
    try:
        conflict = coordinator.reconciler.register_device(snapshot)
        return DeviceRegisterResponse(conflict=conflict)

    except ReentrantMutationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to register snapshot for {snapshot.device_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/devices/{device_id}", response_model=DeviceSnapshot)
def get_device(device_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    try:
        snapshot = coordinator.reconciler.get_device_state(device_id)
        if snapshot is None:
            raise DeviceNotFound(device_id)
        return snapshot

    except DeviceNotFound:
        raise HTTPException(status_code=404, detail="Device not found")


@router.get("/players/{player_id}/devices", response_model=List[DeviceSnapshot])
def get_player_devices(player_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    return coordinator.reconciler.get_player_devices(player_id)


@router.get("/players/{player_id}/conflicts", response_model=List[Conflict])
def get_conflicts(player_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    return coordinator.reconciler.get_conflicts(player_id)


@router.delete("/players/{player_id}/conflicts", response_model=ClearResponse)
def clear_conflicts(player_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    return ClearResponse(removed=coordinator.reconciler.clear_conflicts(player_id))


@router.get("/players/{player_id}/consistency", response_model=ConsistencyReport)
def check_consistency(player_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    """
    檢查玩家在所有裝置上的狀態是否一致

    recommendedState 是 timestamp 最新的裝置快照
    """
    return coordinator.reconciler.validate_player_consistency(player_id)
