"""
Domain records for the sync engine.

Attributes are snake_case; JSON uses camelCase aliases so browser clients
can send `cashBalance` / `lastUpdate` as they always did. Both spellings are
accepted on input.
"""
import enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.constants import DEFAULT_AVATAR


class SyncModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventKind(str, enum.Enum):
    SEND = "send"
    RECEIVE = "receive"
    CONFLICT = "conflict"
    RESOLUTION = "resolution"


class EventSource(str, enum.Enum):
    CLIENT = "client"
    SERVER = "server"


class Resolution(str, enum.Enum):
    LOCAL = "local"
    REMOTE = "remote"
    CALCULATED = "calculated"


class SyncHealth(str, enum.Enum):
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"


# ============ Room Ledger ============

class PlayerRecord(SyncModel):
    id: str = ""
    name: str
    avatar: str = DEFAULT_AVATAR
    portfolio: Dict[str, float] = Field(default_factory=dict)
    cash_balance: float
    portfolio_value: float
    total_value: float
    last_update: int


class RankedPlayer(PlayerRecord):
    rank: int


class RoomState(SyncModel):
    """Point-in-time copy of one room; handed to subscribers and callers."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    room_code: str
    players: Dict[str, PlayerRecord] = Field(default_factory=dict)
    prices: Dict[str, float] = Field(default_factory=dict)
    last_sync: int
    version: int


# ============ Device Reconciler ============

class DeviceSnapshot(SyncModel):
    device_id: str
    player_id: str
    player_name: str = ""
    cash_balance: float
    portfolio_value: float
    total_value: float
    portfolio: Dict[str, float] = Field(default_factory=dict)
    timestamp: int
    version: int = 1
    room_code: str = ""


class FieldDifference(SyncModel):
    field_name: str
    local_value: float
    remote_value: float
    difference: float


class Conflict(SyncModel):
    player_id: str
    player_name: str
    differences: List[FieldDifference]
    resolution: Resolution
    timestamp: int


class ConsistencyReport(SyncModel):
    is_consistent: bool
    conflicts: List[FieldDifference] = Field(default_factory=list)
    recommended_state: Optional[DeviceSnapshot] = None


# ============ Sync Monitor ============

class SyncEventData(SyncModel):
    total_value: float = 0.0
    portfolio_value: float = 0.0
    cash_balance: float = 0.0
    portfolio: Dict[str, float] = Field(default_factory=dict)


class SyncEvent(SyncModel):
    id: str
    kind: EventKind
    player_id: str
    player_name: str = ""
    device_id: str
    room_code: str
    data: SyncEventData
    source: EventSource
    timestamp: int
    version: Optional[int] = None


class SyncMetrics(SyncModel):
    total_events: int = 0
    conflicts: int = 0
    resolutions: int = 0
    avg_sync_time: float = 0.0
    last_sync_time: int = 0
    device_count: int = 0
    consistency_rate: float = 100.0


class SyncPatternAnalysis(SyncModel):
    avg_time_between_updates: float
    conflict_rate: float
    most_recent_conflict: Optional[SyncEvent] = None
    sync_health: SyncHealth
