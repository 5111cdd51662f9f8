"""
Sync Coordinator：把同一筆更新推給 Ledger 和 Reconciler

職責：
1. 持有 RoomRegistry、DeviceReconciler、SyncMonitor（一個 process 一份）
2. 玩家更新：Ledger 驗證並儲存 -> 記錄 send 事件 -> 登記裝置快照
3. 價格更新：Ledger 重新估值
4. 關閉房間：銷毀 Ledger，清掉該房間的裝置快照

Ledger 和 Reconciler 彼此不呼叫，只有這裡同時知道兩者
"""
import logging
from typing import Any, Mapping, Optional

from config import Settings
from core.clock import Clock, now_ms
from core.device_reconciler import DeviceReconciler
from core.room_ledger import RoomRegistry
from core.sync_monitor import SyncMonitor, log_send
from models import DeviceSnapshot, PlayerRecord, RoomState, SyncEventData
from services import validator

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """同步流程的協調者"""

    def __init__(self, settings: Optional[Settings] = None, clock: Clock = now_ms):
        settings = settings or Settings()
        self.settings = settings
        self.clock = clock
        self.monitor = SyncMonitor(
            clock=clock,
            capacity=settings.event_log_capacity,
            consistency_window=settings.consistency_window,
            device_count_window=settings.device_count_window,
            pattern_window=settings.pattern_window,
        )
        self.reconciler = DeviceReconciler(
            clock=clock,
            monitor=self.monitor,
            device_capacity=settings.device_capacity,
            conflict_log_capacity=settings.conflict_log_capacity,
        )
        self.rooms = RoomRegistry(clock=clock)

    def apply_player_update(
        self,
        room_code: str,
        player_id: str,
        payload: Mapping[str, Any],
        device_id: Optional[str] = None,
        version: Optional[int] = None,
    ) -> Optional[PlayerRecord]:
        """
        套用玩家更新

        流程：
        1. 驗證（失敗直接回傳 None，不會建立房間）
        2. 交給房間的 Ledger 儲存
        3. 記錄 send 事件
        4. 有 device_id 時，用儲存後的紀錄登記裝置快照
           （version 預設為 Ledger 目前的 version）

        參數：
            room_code: 房間代碼（房間不存在且資料合法時自動建立）
            player_id: 玩家 ID
            payload: 不可信任的玩家資料
            device_id: 回報更新的裝置
            version: 裝置端的序號

        返回：
            儲存後的 PlayerRecord，或 None（驗證失敗）
        """
        # 1. 先驗證，不合法的資料不會建立房間
        if not validator.validate(payload):
            logger.warning(f"Rejected invalid player data for {player_id} in room {room_code}")
            return None

        # 2. 更新並在同一把鎖內讀回儲存後的紀錄
        ledger = self.rooms.get_or_create(room_code)
        with ledger.lock:
            if not ledger.update_player(player_id, payload):
                return None
            record = ledger.get_player(player_id)
            version = version if version is not None else ledger.version

        # 3. 記錄 send 事件、登記裝置快照
        data = SyncEventData(
            total_value=record.total_value,
            portfolio_value=record.portfolio_value,
            cash_balance=record.cash_balance,
            portfolio=dict(record.portfolio),
        )
        log_send(self.monitor, player_id, record.name, device_id or "", room_code, data,
                 version=version)

        if device_id:
            self.reconciler.register_device(DeviceSnapshot(
                device_id=device_id,
                player_id=player_id,
                player_name=record.name,
                cash_balance=record.cash_balance,
                portfolio_value=record.portfolio_value,
                total_value=record.total_value,
                portfolio=dict(record.portfolio),
                timestamp=record.last_update,
                version=version,
                room_code=room_code,
            ))

        return record

    def apply_price_tick(self, room_code: str, prices: Mapping[str, float]) -> RoomState:
        """價格更新；返回更新後的房間快照"""
        ledger = self.rooms.get(room_code)
        ledger.update_prices(prices)
        return ledger.get_state()

    def close_room(self, room_code: str) -> bool:
        """
        關閉房間

        返回：
            True 如果房間存在並被銷毀
        """
        if not self.rooms.destroy(room_code):
            return False

        evicted = self.reconciler.evict_room(room_code)
        logger.info(f"Closed room {room_code}, dropped {evicted} device snapshots")
        return True
