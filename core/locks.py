"""
並發控制工具

提供 in-memory 元件的鎖定機制，防止競態條件（Race Condition）

FastAPI 會把同步的 endpoint 丟到 thread pool 執行，所以同一個 RoomLedger
可能同時被多個 thread 修改。每個有狀態的元件持有一把 threading.RLock，
所有公開操作都在鎖內完成。

重入政策（Reentrancy）：fail fast
- 通知訂閱者期間，如果訂閱者又對同一個元件發起修改，直接拋出
  ReentrantMutationError，不做任何狀態變更
- 使用 RLock 而不是 Lock：同一個 thread 重入時才能走到檢查邏輯，
  而不是直接 deadlock
"""
import logging
import threading
from contextlib import contextmanager
from functools import wraps

from core.exceptions import ReentrantMutationError

logger = logging.getLogger(__name__)


class Guarded:
    """
    有鎖的元件基類

    子類別需要實作 __str__（用在錯誤訊息），並以 @guarded_mutation
    標記所有會修改狀態的方法
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._notifying = False

    @property
    def lock(self) -> threading.RLock:
        return self._lock


def guarded_mutation(func):
    """
    Mutation decorator：確保修改操作在鎖內執行，且不會在通知期間重入

    使用方式：
        class RoomLedger(Guarded):
            @guarded_mutation
            def remove_player(self, player_id):
                ...

    如果正在通知訂閱者：
        - 拋出 ReentrantMutationError
        - 狀態完全不變（檢查發生在函式本體之前）

    注意：
        - 第一個參數必須是 Guarded 的實例
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            if self._notifying:
                logger.error(
                    f"Rejected reentrant {func.__name__} on {self} during notification"
                )
                raise ReentrantMutationError(str(self), func.__name__)
            return func(self, *args, **kwargs)

    return wrapper


@contextmanager
def notifying(component: Guarded):
    """
    標記元件正在通知訂閱者

    範例：
        with notifying(self):
            for callback in list(self._subscribers):
                callback(snapshot)

    注意：
        - 訂閱者拋出的異常不會在這裡被吃掉，只保證旗標一定會被清除
    """
    with component._lock:
        component._notifying = True
        try:
            yield
        finally:
            component._notifying = False
