"""
Sync Monitor：同步事件紀錄與健康指標

職責：
1. 記錄每一次 send / receive / conflict / resolution 事件
2. 事件存在固定容量的 ring buffer（滿了淘汰最舊的）
3. 每次新增事件時更新滾動指標（consistency rate、device count…）
4. 分析單一玩家的同步模式（更新頻率、衝突率、健康度）

與 RoomLedger / DeviceReconciler 不同：訂閱者拋出的異常會被記錄並吃掉，
其他訂閱者照常執行。
"""
import itertools
import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, List, Mapping, Optional, Union

from core.clock import Clock, now_ms
from core.constants import (
    CONSISTENCY_WINDOW,
    DEFAULT_EVENT_MAX_AGE_MS,
    DEVICE_COUNT_WINDOW,
    EVENT_LOG_CAPACITY,
    PATTERN_WINDOW,
    PLAYER_EVENTS_LIMIT,
    REPORT_WINDOW,
    ROOM_EVENTS_LIMIT,
)
from models import (
    EventKind,
    EventSource,
    SyncEvent,
    SyncEventData,
    SyncMetrics,
    SyncPatternAnalysis,
)
from services.health_service import conflict_rate, get_sync_health
from services.naming_service import generate_event_id
from services.report_service import build_sync_report

logger = logging.getLogger(__name__)

EventCallback = Callable[[SyncEvent], None]
EventData = Union[SyncEventData, Mapping[str, Any]]


class SyncMonitor:
    """同步事件監控器"""

    def __init__(
        self,
        clock: Clock = now_ms,
        capacity: int = EVENT_LOG_CAPACITY,
        consistency_window: int = CONSISTENCY_WINDOW,
        device_count_window: int = DEVICE_COUNT_WINDOW,
        pattern_window: int = PATTERN_WINDOW,
    ):
        self._clock = clock
        self._events: Deque[SyncEvent] = deque(maxlen=capacity)
        self._metrics = SyncMetrics()
        self._consistency_window = consistency_window
        self._device_count_window = device_count_window
        self._pattern_window = pattern_window
        self._subscribers: List[EventCallback] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._events)

    # ============ 記錄 ============

    def log_event(
        self,
        kind: EventKind,
        player_id: str,
        device_id: str,
        room_code: str,
        data: EventData,
        source: EventSource,
        player_name: str = "",
        version: Optional[int] = None,
    ) -> SyncEvent:
        """
        記錄一個同步事件

        流程：
        1. 補上 id 和 timestamp
        2. 放進 ring buffer（超過容量自動淘汰最舊的）
        3. 更新滾動指標
        4. 通知訂閱者（單一訂閱者失敗不影響其他人）

        返回：
            完成的 SyncEvent
        """
        if not isinstance(data, SyncEventData):
            data = SyncEventData.model_validate(data)

        with self._lock:
            timestamp = self._clock()
            event = SyncEvent(
                id=generate_event_id(timestamp),
                kind=EventKind(kind),
                player_id=player_id,
                player_name=player_name,
                device_id=device_id,
                room_code=room_code,
                data=data,
                source=EventSource(source),
                timestamp=timestamp,
                version=version,
            )

            self._events.append(event)
            self._update_metrics(event)
            subscribers = list(self._subscribers)

        self._log(event)

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in sync monitor subscriber: {e}", exc_info=True)

        return event

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # ============ 指標 ============

    def _recent(self, count: int) -> List[SyncEvent]:
        """最新的 count 個事件（由新到舊）"""
        return list(itertools.islice(reversed(self._events), count))

    def _update_metrics(self, event: SyncEvent) -> None:
        self._metrics.total_events += 1
        self._metrics.last_sync_time = event.timestamp

        if event.kind == EventKind.CONFLICT:
            self._metrics.conflicts += 1
        elif event.kind == EventKind.RESOLUTION:
            self._metrics.resolutions += 1

        self._update_rolling_metrics()

    def _update_rolling_metrics(self) -> None:
        recent = self._recent(self._consistency_window)
        if recent:
            conflicts = sum(1 for e in recent if e.kind == EventKind.CONFLICT)
            self._metrics.consistency_rate = (len(recent) - conflicts) / len(recent) * 100
        else:
            self._metrics.consistency_rate = 100.0

        # recent 由新到舊，相鄰兩個事件的間隔都是非負值
        gaps = [newer.timestamp - older.timestamp for newer, older in zip(recent, recent[1:])]
        self._metrics.avg_sync_time = sum(gaps) / len(gaps) if gaps else 0.0

        devices = {e.device_id for e in self._recent(self._device_count_window)}
        self._metrics.device_count = len(devices)

    def get_metrics(self) -> SyncMetrics:
        with self._lock:
            return self._metrics.model_copy()

    # ============ 查詢 ============

    def get_player_events(self, player_id: str, limit: int = PLAYER_EVENTS_LIMIT) -> List[SyncEvent]:
        """某個玩家最近的事件（由新到舊，最多 limit 個）"""
        with self._lock:
            matches = (e for e in reversed(self._events) if e.player_id == player_id)
            return list(itertools.islice(matches, max(limit, 0)))

    def get_room_events(self, room_code: str, limit: int = ROOM_EVENTS_LIMIT) -> List[SyncEvent]:
        """某個房間最近的事件（由新到舊，最多 limit 個）"""
        with self._lock:
            matches = (e for e in reversed(self._events) if e.room_code == room_code)
            return list(itertools.islice(matches, max(limit, 0)))

    def analyze_sync_patterns(self, player_id: str) -> SyncPatternAnalysis:
        """
        分析玩家的同步模式（最近 100 個事件）

        返回：
            - avg_time_between_updates: 相鄰 send 事件的平均間隔（毫秒）
            - conflict_rate: conflict 事件佔比（百分比）
            - most_recent_conflict: 最近一次 conflict 事件
            - sync_health: > 20% CRITICAL，> 5% WARNING，其他 GOOD
        """
        events = self.get_player_events(player_id, self._pattern_window)
        sends = [e for e in events if e.kind == EventKind.SEND]
        conflicts = [e for e in events if e.kind == EventKind.CONFLICT]

        avg_time_between_updates = 0.0
        if len(sends) > 1:
            gaps = [newer.timestamp - older.timestamp for newer, older in zip(sends, sends[1:])]
            avg_time_between_updates = sum(gaps) / len(gaps)

        rate = conflict_rate(len(conflicts), len(events))

        return SyncPatternAnalysis(
            avg_time_between_updates=avg_time_between_updates,
            conflict_rate=rate,
            most_recent_conflict=conflicts[0] if conflicts else None,
            sync_health=get_sync_health(rate),
        )

    def generate_sync_report(self, room_code: str) -> str:
        """房間最近 200 個事件的文字報告"""
        return build_sync_report(
            room_code,
            self.get_room_events(room_code, REPORT_WINDOW),
            self.analyze_sync_patterns,
        )

    # ============ 清理 ============

    def clear_events(self, max_age_ms: int = DEFAULT_EVENT_MAX_AGE_MS) -> int:
        """
        清除舊事件

        只保留 timestamp 晚於 now - max_age_ms 的事件；
        clear_events(0) 會清空所有事件。累計計數器（total_events 等）不重設。

        返回：
            被清除的事件數量
        """
        with self._lock:
            cutoff = self._clock() - max_age_ms
            kept = [e for e in self._events if e.timestamp > cutoff]
            removed = len(self._events) - len(kept)

            self._events.clear()
            self._events.extend(kept)
            self._update_rolling_metrics()

        if removed:
            logger.info(f"Cleared {removed} sync events older than {max_age_ms}ms")
        return removed

    def _log(self, event: SyncEvent) -> None:
        message = (
            f"SYNC {event.kind.value.upper()}: {event.player_name or event.player_id} "
            f"-> €{event.data.total_value:.2f} ({event.source.value}, device {event.device_id})"
        )
        if event.kind == EventKind.CONFLICT:
            logger.warning(message)
        else:
            logger.debug(message)


# ============ 便利函式 ============

def log_send(monitor: SyncMonitor, player_id: str, player_name: str, device_id: str,
             room_code: str, data: EventData, version: Optional[int] = None) -> SyncEvent:
    """客戶端送出更新"""
    return monitor.log_event(EventKind.SEND, player_id, device_id, room_code, data,
                             EventSource.CLIENT, player_name=player_name, version=version)


def log_receive(monitor: SyncMonitor, player_id: str, player_name: str, device_id: str,
                room_code: str, data: EventData, version: Optional[int] = None) -> SyncEvent:
    """伺服器收到更新"""
    return monitor.log_event(EventKind.RECEIVE, player_id, device_id, room_code, data,
                             EventSource.SERVER, player_name=player_name, version=version)


def log_conflict(monitor: SyncMonitor, player_id: str, player_name: str, device_id: str,
                 room_code: str, data: EventData) -> SyncEvent:
    return monitor.log_event(EventKind.CONFLICT, player_id, device_id, room_code, data,
                             EventSource.CLIENT, player_name=player_name)


def log_resolution(monitor: SyncMonitor, player_id: str, player_name: str, device_id: str,
                   room_code: str, data: EventData) -> SyncEvent:
    return monitor.log_event(EventKind.RESOLUTION, player_id, device_id, room_code, data,
                             EventSource.SERVER, player_name=player_name)
