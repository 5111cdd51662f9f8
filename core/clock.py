"""
時間來源

所有時間戳都是 epoch 毫秒整數。元件接受 clock 參數，測試時可以注入假時鐘。
"""
import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """目前時間（epoch 毫秒）"""
    return int(time.time() * 1000)
