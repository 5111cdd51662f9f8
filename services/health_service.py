"""
同步健康服務：根據衝突率判斷玩家的同步狀態

- conflict rate > 20%: CRITICAL
- conflict rate > 5%: WARNING
- 其他: GOOD
"""
from core.constants import CRITICAL_CONFLICT_RATE, WARNING_CONFLICT_RATE
from models import SyncHealth


def get_sync_health(conflict_rate: float) -> SyncHealth:
    """
    根據衝突率決定同步健康度

    參數：
        conflict_rate: 衝突事件佔比（百分比，0-100）

    返回：
        SyncHealth enum

    範例：
        get_sync_health(0) -> SyncHealth.GOOD
        get_sync_health(5) -> SyncHealth.GOOD
        get_sync_health(12.5) -> SyncHealth.WARNING
        get_sync_health(50) -> SyncHealth.CRITICAL
    """
    if conflict_rate > CRITICAL_CONFLICT_RATE:
        return SyncHealth.CRITICAL
    elif conflict_rate > WARNING_CONFLICT_RATE:
        return SyncHealth.WARNING
    else:
        return SyncHealth.GOOD


def conflict_rate(conflicts: int, total: int) -> float:
    """
    計算衝突率（百分比）

    沒有任何事件時回傳 0
    """
    return (conflicts / total) * 100 if total > 0 else 0.0
