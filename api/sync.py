"""
Sync Monitor API Endpoints

職責：
1. 查詢同步事件（房間 / 玩家）
2. 滾動指標與玩家同步模式分析
3. 房間同步報告
4. 清除舊事件
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from api.deps import get_coordinator
from core.constants import PLAYER_EVENTS_LIMIT, ROOM_EVENTS_LIMIT
from core.sync_coordinator import SyncCoordinator
from models import SyncEvent, SyncMetrics, SyncPatternAnalysis
from schemas import ClearResponse

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.get("/metrics", response_model=SyncMetrics)
def get_metrics(coordinator: SyncCoordinator = Depends(get_coordinator)):
    return coordinator.monitor.get_metrics()


@router.get("/rooms/{code}/events", response_model=List[SyncEvent])
def get_room_events(
    code: str,
    limit: int = Query(ROOM_EVENTS_LIMIT, ge=0),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """房間最近的事件（由新到舊）"""
    return coordinator.monitor.get_room_events(code, limit)


@router.get("/rooms/{code}/report", response_class=PlainTextResponse)
def get_room_report(code: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    return coordinator.monitor.generate_sync_report(code)


@router.get("/players/{player_id}/events", response_model=List[SyncEvent])
def get_player_events(
    player_id: str,
    limit: int = Query(PLAYER_EVENTS_LIMIT, ge=0),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """玩家最近的事件（由新到舊）"""
    return coordinator.monitor.get_player_events(player_id, limit)


@router.get("/players/{player_id}/analysis", response_model=SyncPatternAnalysis)
def analyze_player(player_id: str, coordinator: SyncCoordinator = Depends(get_coordinator)):
    """
    玩家同步模式分析

    syncHealth：conflictRate > 20% critical，> 5% warning，其他 good
    """
    return coordinator.monitor.analyze_sync_patterns(player_id)


@router.delete("/events", response_model=ClearResponse)
def clear_events(
    max_age_ms: Optional[int] = Query(None, ge=0),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """
    清除比 max_age_ms 更舊的事件；max_age_ms=0 清空全部

    沒給 max_age_ms 時使用設定的 event_max_age_ms（SYNC_EVENT_MAX_AGE_MS）
    """
    if max_age_ms is None:
        max_age_ms = coordinator.settings.event_max_age_ms
    return ClearResponse(removed=coordinator.monitor.clear_events(max_age_ms))
