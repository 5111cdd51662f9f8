import pytest

from core.sync_coordinator import SyncCoordinator
from core.sync_monitor import SyncMonitor


class FakeClock:
    """Deterministic millisecond clock; advance() moves time forward."""

    def __init__(self, start: int = 1_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monitor(clock):
    return SyncMonitor(clock=clock)


@pytest.fixture
def coordinator(clock):
    return SyncCoordinator(clock=clock)


def player_payload(**overrides):
    payload = {
        "name": "Alice",
        "cashBalance": 100.0,
        "portfolioValue": 200.0,
        "totalValue": 300.0,
        "portfolio": {"BTC": 2},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def payload():
    return player_payload
