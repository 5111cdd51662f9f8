"""
HTTP request / response bodies.

Domain records from models.py are returned as-is; this module only holds
the envelopes the routers need around them.
"""
from typing import Dict, List, Optional

from pydantic import Field

from models import Conflict, PlayerRecord, SyncModel


class RoomCreate(SyncModel):
    room_code: Optional[str] = Field(default=None, min_length=3)


class RoomResponse(SyncModel):
    room_code: str
    version: int


class RoomListResponse(SyncModel):
    rooms: List[str]


class PriceTick(SyncModel):
    prices: Dict[str, float]


class PlayerUpdateResponse(SyncModel):
    accepted: bool
    version: int
    fingerprint: str
    player: PlayerRecord


class DeviceRegisterResponse(SyncModel):
    conflict: Optional[Conflict] = None


class ClearResponse(SyncModel):
    removed: int


class DeviceIdResponse(SyncModel):
    device_id: str
