"""
命名服務：生成 Room Code、Device ID 和 Event ID

純計算邏輯，不檢查唯一性
"""
import random
import string
import uuid


def generate_room_code() -> str:
    """
    生成隨機的 6 位大寫字母房間代碼

    範例：ABCDEF, XYZABC

    注意：
    - 不檢查唯一性（由呼叫者負責）
    - 26^6 = 308,915,776 種可能，碰撞機率極低
    """
    return ''.join(random.choices(string.ascii_uppercase, k=6))


def generate_device_id(timestamp: int) -> str:
    """
    生成裝置 ID

    格式：device_<毫秒時間戳>_<9 位亂數>
    """
    return f"device_{timestamp}_{uuid.uuid4().hex[:9]}"


def generate_event_id(timestamp: int) -> str:
    """
    生成同步事件 ID

    格式：sync_<毫秒時間戳>_<9 位亂數>
    同一毫秒內的多個事件靠亂數區分
    """
    return f"sync_{timestamp}_{uuid.uuid4().hex[:9]}"
