"""
Room Ledger：每個房間唯一的權威帳本

職責：
1. 保存房間內所有玩家的財務狀態與價格表
2. 接受不可信任的更新（先經過 Validator）
3. 價格更新時重新計算所有玩家的持倉價值
4. 每次修改後通知訂閱者（同步、帶完整快照）

RoomRegistry 負責 Ledger 的生命週期（建立 / 取得 / 銷毀），
由 SyncCoordinator 持有並以參考傳遞，不使用全域 singleton。
"""
import logging
import threading
from typing import Callable, Dict, List, Mapping, Any, Optional

from core.clock import Clock, now_ms
from core.constants import MONEY_TOLERANCE
from core.exceptions import RoomNotFound, RoomAlreadyExists
from core.locks import Guarded, guarded_mutation, notifying
from models import PlayerRecord, RankedPlayer, RoomState
from services import validator
from services.naming_service import generate_room_code
from services.valuation_service import (
    calculate_portfolio_value,
    calculate_total_value,
    differs,
)

logger = logging.getLogger(__name__)

StateCallback = Callable[[RoomState], None]


class RoomLedger(Guarded):
    """單一房間的帳本"""

    def __init__(self, room_code: str, clock: Clock = now_ms):
        super().__init__()
        self.room_code = room_code
        self._clock = clock
        self._players: Dict[str, PlayerRecord] = {}
        self._prices: Dict[str, float] = {}
        self._last_sync = clock()
        self._version = 1
        self._subscribers: List[StateCallback] = []

    def __str__(self):
        return f"RoomLedger({self.room_code})"

    @property
    def version(self) -> int:
        return self._version

    # ============ 訂閱 ============

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """
        訂閱房間狀態

        callback 會在每次修改後收到一份新的 RoomState 快照

        返回：
            unsubscribe 函式（重複呼叫沒有副作用）

        注意：
            - callback 拋出的異常會直接傳回給觸發修改的呼叫者，
              剩下的訂閱者不會被通知（修改本身已經生效）
            - callback 內不能再修改同一個 Ledger（ReentrantMutationError）
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def clear_subscribers(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def _commit(self) -> None:
        """version + 1、更新 last_sync、通知所有訂閱者"""
        self._version += 1
        self._last_sync = self._clock()
        snapshot = self.get_state()

        with notifying(self):
            for callback in list(self._subscribers):
                callback(snapshot)

    # ============ 查詢 ============

    def get_state(self) -> RoomState:
        """取得整個房間的快照（deep copy，不會被之後的修改影響）"""
        with self._lock:
            return RoomState(
                room_code=self.room_code,
                players={pid: p.model_copy(deep=True) for pid, p in self._players.items()},
                prices=dict(self._prices),
                last_sync=self._last_sync,
                version=self._version,
            )

    def get_player(self, player_id: str) -> Optional[PlayerRecord]:
        with self._lock:
            player = self._players.get(player_id)
            return player.model_copy(deep=True) if player else None

    def get_all_players(self) -> List[RankedPlayer]:
        """
        取得排行榜

        規則：
        - 依 total_value 由高到低排序
        - 同分保留原本的儲存順序（stable sort）
        - rank 完全依照排序位置，從 1 開始，沒有並列名次

        返回：
            RankedPlayer list
        """
        with self._lock:
            players = sorted(self._players.values(), key=lambda p: p.total_value, reverse=True)
            return [
                RankedPlayer(**player.model_dump(), rank=index)
                for index, player in enumerate(players, start=1)
            ]

    # ============ 修改 ============

    @guarded_mutation
    def update_player(self, player_id: str, partial: Mapping[str, Any]) -> bool:
        """
        更新（或新增）玩家

        流程：
        1. 經過 Validator.sanitize（id 強制為 player_id）
        2. 驗證失敗：記錄 warning，回傳 False，原本的資料不變
           總值被修正：記錄 warning
        3. 成功：取代原本的紀錄、version + 1、通知訂閱者

        參數：
            player_id: 玩家 ID
            partial: 不可信任的玩家資料

        返回：
            True 如果更新被接受，False 否則
        """
        # 1. 驗證與正規化（總值不一致會在這裡被修正）
        candidate = {**partial, "id": player_id} if isinstance(partial, Mapping) else partial
        record = validator.sanitize(candidate, clock=self._clock)
        if record is None:
            logger.warning(f"Rejected invalid player data for {player_id} in room {self.room_code}")
            return False

        if validator.total_was_corrected(candidate, record):
            logger.warning(
                f"Total value inconsistency for {record.name!r} in room {self.room_code}: "
                f"recalculated to {record.total_value}"
            )

        # 2. 取代原本的紀錄
        self._players[player_id] = record
        logger.info(f"Player {record.name} updated in room {self.room_code}: €{record.total_value}")

        # 3. 通知
        self._commit()
        return True

    @guarded_mutation
    def update_prices(self, prices: Mapping[str, float]) -> None:
        """
        價格更新（整張價格表直接取代）

        對每個玩家：
        - portfolio_value = round(Σ 數量 × 單價, 2)
        - total_value = round(portfolio_value + cash_balance, 2)
        - 只有 portfolio_value 變動超過 MONEY_TOLERANCE 才更新 last_update
          （避免浮點誤差造成下游無謂的更新）

        不論有多少玩家改變，version 只 + 1、訂閱者只通知一次；
        空房間也一樣。
        """
        self._prices = dict(prices)

        changed = 0
        for player_id, player in self._players.items():
            portfolio_value = calculate_portfolio_value(player.portfolio, self._prices)
            update = {
                "portfolio_value": portfolio_value,
                "total_value": calculate_total_value(portfolio_value, player.cash_balance),
            }
            if differs(player.portfolio_value, portfolio_value, MONEY_TOLERANCE):
                update["last_update"] = self._clock()
                changed += 1
            self._players[player_id] = player.model_copy(update=update)

        logger.debug(
            f"Prices updated in room {self.room_code}: {changed}/{len(self._players)} players revalued"
        )
        self._commit()

    @guarded_mutation
    def remove_player(self, player_id: str) -> None:
        """
        移除玩家

        玩家不存在時仍然會 version + 1 並通知訂閱者
        """
        if self._players.pop(player_id, None) is None:
            logger.debug(f"Player {player_id} not in room {self.room_code}, nothing to remove")
        else:
            logger.info(f"Player {player_id} removed from room {self.room_code}")
        self._commit()


class RoomRegistry:
    """
    Room Ledger 生命週期管理器

    room_code -> RoomLedger，一個房間代碼只會有一個 Ledger
    """

    def __init__(self, clock: Clock = now_ms):
        self._clock = clock
        self._ledgers: Dict[str, RoomLedger] = {}
        self._lock = threading.Lock()

    def __contains__(self, room_code: str) -> bool:
        return room_code in self._ledgers

    def __len__(self) -> int:
        return len(self._ledgers)

    def create_room(self, room_code: Optional[str] = None) -> RoomLedger:
        """
        建立新房間

        參數：
            room_code: 指定的房間代碼；省略時自動生成 6 位代碼

        返回：
            新的 RoomLedger

        異常：
            RoomAlreadyExists: 指定的代碼已被使用
        """
        with self._lock:
            if room_code is None:
                room_code = generate_room_code()
                while room_code in self._ledgers:
                    room_code = generate_room_code()
                    logger.warning(f"Room code collision detected, regenerating: {room_code}")
            elif room_code in self._ledgers:
                raise RoomAlreadyExists(room_code)

            ledger = RoomLedger(room_code, clock=self._clock)
            self._ledgers[room_code] = ledger

        logger.info(f"Created room ledger {room_code}")
        return ledger

    def get_or_create(self, room_code: str) -> RoomLedger:
        with self._lock:
            ledger = self._ledgers.get(room_code)
            if ledger is None:
                ledger = RoomLedger(room_code, clock=self._clock)
                self._ledgers[room_code] = ledger
                logger.info(f"Created room ledger {room_code}")
            return ledger

    def get(self, room_code: str) -> RoomLedger:
        """
        取得已存在的房間

        異常：
            RoomNotFound: 房間不存在
        """
        ledger = self._ledgers.get(room_code)
        if ledger is None:
            raise RoomNotFound(room_code)
        return ledger

    def destroy(self, room_code: str) -> bool:
        """
        銷毀房間（連同所有訂閱者）

        返回：
            True 如果房間存在並被移除，False 否則
        """
        with self._lock:
            ledger = self._ledgers.pop(room_code, None)

        if ledger is None:
            return False

        ledger.clear_subscribers()
        logger.info(f"Destroyed room ledger {room_code}")
        return True

    def room_codes(self) -> List[str]:
        with self._lock:
            return list(self._ledgers)
