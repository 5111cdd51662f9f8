"""
Device Reconciler：裝置快照的比對與衝突記錄

職責：
1. 每個 device_id 保存一份最新快照
2. 新快照進來時，和同一台裝置上一次的快照逐欄比對
3. 超過容忍值就建立 Conflict，計算建議的 resolution，通知訂閱者
4. 檢查同一個玩家在多台裝置上的狀態是否一致

注意：
- resolution 只是建議（telemetry），不是強制：新快照一定會覆蓋舊快照，
  需要強制的呼叫者請自行套用 validate_player_consistency 的 recommended_state
- 裝置快照有容量上限，超過時淘汰最久沒出現的裝置（LRU）
"""
import logging
from collections import OrderedDict, deque
from typing import Callable, Deque, List, Mapping, Optional

from core.clock import Clock, now_ms
from core.constants import (
    CONFLICT_LOG_CAPACITY,
    DEVICE_CAPACITY,
    MONEY_TOLERANCE,
    QUANTITY_TOLERANCE,
    TIMESTAMP_TOLERANCE_MS,
)
from core.locks import Guarded, guarded_mutation, notifying
from core.sync_monitor import SyncMonitor, log_conflict, log_receive, log_resolution
from models import (
    Conflict,
    ConsistencyReport,
    DeviceSnapshot,
    FieldDifference,
    Resolution,
    SyncEventData,
)
from services.valuation_service import differs, round_currency

logger = logging.getLogger(__name__)

ConflictCallback = Callable[[Conflict], None]

_MONEY_FIELDS = (
    ("total_value", "totalValue"),
    ("portfolio_value", "portfolioValue"),
    ("cash_balance", "cashBalance"),
)


def detect_differences(local: DeviceSnapshot, remote: DeviceSnapshot) -> List[FieldDifference]:
    """
    逐欄比對兩份快照

    規則：
    - total_value、portfolio_value、cash_balance：容忍值 MONEY_TOLERANCE
    - portfolio 每個幣種：容忍值 QUANTITY_TOLERANCE
      比對兩邊 symbol 的聯集（依字母排序），只出現在一邊的視為另一邊為 0

    返回：
        FieldDifference list，順序固定：totalValue、portfolioValue、cashBalance、
        portfolio.<SYMBOL>（field_name 使用客戶端的 camelCase 欄位名稱）
    """
    differences = []

    for attr, field_name in _MONEY_FIELDS:
        local_value = getattr(local, attr)
        remote_value = getattr(remote, attr)
        if differs(local_value, remote_value, MONEY_TOLERANCE):
            differences.append(FieldDifference(
                field_name=field_name,
                local_value=local_value,
                remote_value=remote_value,
                difference=abs(local_value - remote_value),
            ))

    for symbol in sorted(set(local.portfolio) | set(remote.portfolio)):
        local_amount = local.portfolio.get(symbol, 0)
        remote_amount = remote.portfolio.get(symbol, 0)
        if differs(local_amount, remote_amount, QUANTITY_TOLERANCE):
            differences.append(FieldDifference(
                field_name=f"portfolio.{symbol}",
                local_value=local_amount,
                remote_value=remote_amount,
                difference=abs(local_amount - remote_amount),
            ))

    return differences


def decide_resolution(local: DeviceSnapshot, remote: DeviceSnapshot) -> Resolution:
    """
    決定建議的 resolution

    規則（依序）：
    1. 時間戳差距超過 TIMESTAMP_TOLERANCE_MS：較新的一方勝出
    2. 較大的 version 勝出
    3. 都相同：CALCULATED（由呼叫者用 portfolio × 目前價格自行計算）

    參數：
        local: 已保存的快照
        remote: 新進來的快照
    """
    if remote.timestamp > local.timestamp + TIMESTAMP_TOLERANCE_MS:
        return Resolution.REMOTE
    elif local.timestamp > remote.timestamp + TIMESTAMP_TOLERANCE_MS:
        return Resolution.LOCAL

    if remote.version > local.version:
        return Resolution.REMOTE
    elif local.version > remote.version:
        return Resolution.LOCAL

    return Resolution.CALCULATED


def create_device_snapshot(
    device_id: str,
    player_id: str,
    player_name: str,
    portfolio: Mapping[str, float],
    cash_balance: float,
    portfolio_value: float,
    total_value: float,
    version: int = 1,
    room_code: str = "",
    clock: Clock = now_ms,
) -> DeviceSnapshot:
    """
    建立裝置快照

    金額欄位四捨五入到兩位小數，portfolio 複製一份（不共用），
    timestamp 蓋上目前時間
    """
    return DeviceSnapshot(
        device_id=device_id,
        player_id=player_id,
        player_name=player_name,
        portfolio=dict(portfolio),
        cash_balance=round_currency(cash_balance),
        portfolio_value=round_currency(portfolio_value),
        total_value=round_currency(total_value),
        timestamp=clock(),
        version=version,
        room_code=room_code,
    )


def _event_data(snapshot: DeviceSnapshot) -> SyncEventData:
    return SyncEventData(
        total_value=snapshot.total_value,
        portfolio_value=snapshot.portfolio_value,
        cash_balance=snapshot.cash_balance,
        portfolio=dict(snapshot.portfolio),
    )


class DeviceReconciler(Guarded):
    """裝置快照管理器"""

    def __init__(
        self,
        clock: Clock = now_ms,
        monitor: Optional[SyncMonitor] = None,
        device_capacity: int = DEVICE_CAPACITY,
        conflict_log_capacity: int = CONFLICT_LOG_CAPACITY,
    ):
        super().__init__()
        self._clock = clock
        self._monitor = monitor
        self._device_capacity = device_capacity
        # device_id -> 快照；順序即最近出現順序（最舊的在最前面）
        self._devices: "OrderedDict[str, DeviceSnapshot]" = OrderedDict()
        self._conflicts: Deque[Conflict] = deque(maxlen=conflict_log_capacity)
        self._callbacks: List[ConflictCallback] = []

    def __str__(self):
        return "DeviceReconciler"

    def __len__(self) -> int:
        return len(self._devices)

    # ============ 註冊 ============

    @guarded_mutation
    def register_device(self, snapshot: DeviceSnapshot) -> Optional[Conflict]:
        """
        註冊裝置的最新快照

        流程：
        1. 找出同一個 device_id 上一次的快照
        2. 逐欄比對，超過容忍值就建立 Conflict
        3. 不論 resolution 結果，新快照一律覆蓋舊快照
           （超過容量時淘汰最久沒出現的裝置）
        4. 記錄 Conflict
        5. 通知 monitor 與衝突訂閱者（期間禁止重入修改）

        參數：
            snapshot: 裝置回報的快照（portfolio 會被複製）

        返回：
            Conflict，或 None（沒有上一份快照或沒有差異）

        注意：
            - 訂閱者拋出的異常會傳回給呼叫者，剩下的訂閱者不會被通知
              （新快照已經儲存）
        """
        snapshot = snapshot.model_copy(deep=True)
        previous = self._devices.get(snapshot.device_id)

        conflict = None
        if previous is not None:
            differences = detect_differences(previous, snapshot)
            if differences:
                conflict = Conflict(
                    player_id=snapshot.player_id,
                    player_name=snapshot.player_name,
                    differences=differences,
                    resolution=decide_resolution(previous, snapshot),
                    timestamp=self._clock(),
                )

        self._store(snapshot)
        if conflict is not None:
            self._conflicts.append(conflict)
            fields = ", ".join(d.field_name for d in conflict.differences)
            logger.warning(
                f"Conflict for player {conflict.player_name or conflict.player_id} on device "
                f"{snapshot.device_id}: {fields} (resolution: {conflict.resolution.value})"
            )

        # monitor 訂閱者和衝突訂閱者一樣，不能在這段期間修改 reconciler
        with notifying(self):
            if self._monitor is not None:
                log_receive(self._monitor, snapshot.player_id, snapshot.player_name,
                            snapshot.device_id, snapshot.room_code, _event_data(snapshot),
                            version=snapshot.version)
            if conflict is not None:
                self._notify_conflict(conflict, previous, snapshot)
        return conflict

    def _notify_conflict(self, conflict: Conflict, previous: DeviceSnapshot,
                         snapshot: DeviceSnapshot) -> None:
        if self._monitor is not None:
            log_conflict(self._monitor, snapshot.player_id, snapshot.player_name,
                         snapshot.device_id, snapshot.room_code, _event_data(snapshot))
            winner = previous if conflict.resolution == Resolution.LOCAL else snapshot
            log_resolution(self._monitor, snapshot.player_id, snapshot.player_name,
                           snapshot.device_id, snapshot.room_code, _event_data(winner))

        for callback in list(self._callbacks):
            callback(conflict)

    def _store(self, snapshot: DeviceSnapshot) -> None:
        self._devices[snapshot.device_id] = snapshot
        self._devices.move_to_end(snapshot.device_id)

        while len(self._devices) > self._device_capacity:
            evicted_id, _ = self._devices.popitem(last=False)
            logger.info(f"Evicted least recently seen device {evicted_id}")

    # ============ 淘汰 ============

    @guarded_mutation
    def evict_device(self, device_id: str) -> bool:
        """移除一台裝置的快照；返回 True 如果裝置存在"""
        return self._devices.pop(device_id, None) is not None

    @guarded_mutation
    def evict_stale(self, max_age_ms: int) -> int:
        """
        移除 timestamp 早於 now - max_age_ms 的裝置快照

        返回：
            被移除的裝置數量
        """
        cutoff = self._clock() - max_age_ms
        stale = [device_id for device_id, s in self._devices.items() if s.timestamp < cutoff]
        for device_id in stale:
            del self._devices[device_id]

        if stale:
            logger.info(f"Evicted {len(stale)} stale device snapshots")
        return len(stale)

    @guarded_mutation
    def evict_room(self, room_code: str) -> int:
        """移除某個房間的所有裝置快照；返回被移除的數量"""
        doomed = [device_id for device_id, s in self._devices.items() if s.room_code == room_code]
        for device_id in doomed:
            del self._devices[device_id]
        return len(doomed)

    # ============ 衝突 ============

    def on_conflict(self, callback: ConflictCallback) -> Callable[[], None]:
        """
        訂閱衝突通知

        返回：
            unsubscribe 函式
        """
        with self._lock:
            self._callbacks.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def get_conflicts(self, player_id: str) -> List[Conflict]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._conflicts if c.player_id == player_id]

    @guarded_mutation
    def clear_conflicts(self, player_id: str) -> int:
        """清除某個玩家的衝突紀錄；返回被清除的數量"""
        kept = [c for c in self._conflicts if c.player_id != player_id]
        removed = len(self._conflicts) - len(kept)
        self._conflicts.clear()
        self._conflicts.extend(kept)
        return removed

    # ============ 查詢 ============

    def get_device_state(self, device_id: str) -> Optional[DeviceSnapshot]:
        with self._lock:
            snapshot = self._devices.get(device_id)
            return snapshot.model_copy(deep=True) if snapshot else None

    def get_player_devices(self, player_id: str) -> List[DeviceSnapshot]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._devices.values() if s.player_id == player_id]

    def validate_player_consistency(self, player_id: str) -> ConsistencyReport:
        """
        檢查玩家在所有裝置上的狀態是否一致

        流程：
        1. 以 timestamp 最新的裝置為基準（同時間取最久沒回報的那台）
        2. 其他裝置逐一和基準比對

        返回：
            - is_consistent: 沒有其他裝置，或沒有任何差異
            - conflicts: 所有差異
            - recommended_state: 基準快照（玩家沒有任何裝置時為 None）
        """
        devices = self.get_player_devices(player_id)
        if not devices:
            return ConsistencyReport(is_consistent=True)

        reference = max(devices, key=lambda s: s.timestamp)
        conflicts = []
        for device in devices:
            if device is not reference:
                conflicts.extend(detect_differences(reference, device))

        return ConsistencyReport(
            is_consistent=not conflicts,
            conflicts=conflicts,
            recommended_state=reference,
        )
