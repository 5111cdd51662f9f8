"""
自定義異常類別

集中管理所有同步引擎異常，方便 API 層統一處理

注意：驗證失敗（不合法的玩家資料）在核心層只回傳 False，不拋異常；
InvalidPlayerData 只給 API 層使用。
"""


class SyncEngineException(Exception):
    """所有同步引擎異常的基類"""
    pass


# ============ Room 相關異常 ============

class RoomNotFound(SyncEngineException):
    """房間不存在"""
    def __init__(self, room_code):
        self.room_code = room_code
        super().__init__(f"Room {room_code} not found")


class RoomAlreadyExists(SyncEngineException):
    """房間代碼已被使用"""
    def __init__(self, room_code):
        self.room_code = room_code
        super().__init__(f"Room {room_code} already exists")


# ============ Player 相關異常 ============

class PlayerNotFound(SyncEngineException):
    """玩家不存在"""
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class InvalidPlayerData(SyncEngineException):
    """玩家資料驗證失敗（更新被丟棄，原本的資料不變）"""
    pass


# ============ Device 相關異常 ============

class DeviceNotFound(SyncEngineException):
    """裝置快照不存在"""
    def __init__(self, device_id):
        self.device_id = device_id
        super().__init__(f"Device {device_id} not found")


# ============ 並發相關異常 ============

class ReentrantMutationError(SyncEngineException):
    """在通知訂閱者的過程中，又對同一個元件發起修改"""
    def __init__(self, owner, operation):
        self.owner = owner
        self.operation = operation
        super().__init__(
            f"Reentrant call to {operation} on {owner} while subscribers are being notified"
        )
