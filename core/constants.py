"""
同步引擎共用常數

所有比對點（Validator、Ledger、Reconciler、Monitor）都從這裡取容忍值，
避免各處散落 0.01 / 0.001 / 1000 這類魔術數字。
"""

# ============ 容忍值 ============

# 金額（現金、持倉價值、總值）視為相等的最大絕對差
MONEY_TOLERANCE = 0.01

# 加密貨幣數量視為相等的最大絕對差
QUANTITY_TOLERANCE = 0.001

# 時間戳差距在此範圍內，改用 version 決定勝方（毫秒）
TIMESTAMP_TOLERANCE_MS = 1000

# ============ 預設值 ============

DEFAULT_AVATAR = "👤"

# ============ Sync Monitor ============

EVENT_LOG_CAPACITY = 1000
CONSISTENCY_WINDOW = 100
DEVICE_COUNT_WINDOW = 50
PATTERN_WINDOW = 100
REPORT_WINDOW = 200
DEFAULT_EVENT_MAX_AGE_MS = 300_000

PLAYER_EVENTS_LIMIT = 50
ROOM_EVENTS_LIMIT = 100

# conflict rate（百分比）門檻
CRITICAL_CONFLICT_RATE = 20
WARNING_CONFLICT_RATE = 5

# ============ Device Reconciler ============

DEVICE_CAPACITY = 1000
CONFLICT_LOG_CAPACITY = 1000
