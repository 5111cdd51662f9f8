import pytest

from core.sync_monitor import (
    SyncMonitor,
    log_conflict,
    log_receive,
    log_resolution,
    log_send,
)
from models import EventKind, EventSource, SyncHealth

DATA = {"total_value": 300.0, "portfolio_value": 200.0, "cash_balance": 100.0, "portfolio": {"BTC": 2}}


def log(monitor, kind=EventKind.SEND, player_id="p1", device_id="A", room_code="ABC"):
    return monitor.log_event(kind, player_id, device_id, room_code, DATA, EventSource.CLIENT,
                             player_name="Alice")


def test_log_event_assigns_id_and_timestamp(monitor, clock):
    first = log(monitor)
    second = log(monitor)

    assert first.id != second.id
    assert first.id.startswith("sync_")
    assert first.timestamp == clock.now
    assert first.data.total_value == 300.0


def test_ring_buffer_evicts_oldest(clock):
    monitor = SyncMonitor(clock=clock, capacity=3)
    for player_id in ("p1", "p2", "p3", "p4"):
        log(monitor, player_id=player_id)

    assert len(monitor) == 3
    assert monitor.get_player_events("p1") == []
    assert monitor.get_metrics().total_events == 4


def test_counters_by_kind(monitor):
    log(monitor, EventKind.SEND)
    log(monitor, EventKind.CONFLICT)
    log(monitor, EventKind.RESOLUTION)
    log(monitor, EventKind.CONFLICT)

    metrics = monitor.get_metrics()
    assert metrics.total_events == 4
    assert metrics.conflicts == 2
    assert metrics.resolutions == 1
    assert metrics.consistency_rate == 50.0


def test_consistency_rate_uses_last_100_events(monitor):
    for _ in range(10):
        log(monitor, EventKind.CONFLICT)
    for _ in range(100):
        log(monitor, EventKind.SEND)

    assert monitor.get_metrics().consistency_rate == 100.0


def test_device_count_uses_last_50_events(monitor):
    log(monitor, device_id="old")
    for _ in range(50):
        log(monitor, device_id="A")
    log(monitor, device_id="B")

    assert monitor.get_metrics().device_count == 2


def test_avg_sync_time_and_last_sync_time(monitor, clock):
    log(monitor)
    clock.advance(100)
    log(monitor)
    clock.advance(300)
    log(monitor)

    metrics = monitor.get_metrics()
    assert metrics.avg_sync_time == 200.0
    assert metrics.last_sync_time == clock.now


def test_get_metrics_returns_copy(monitor):
    log(monitor)
    monitor.get_metrics().total_events = 99
    assert monitor.get_metrics().total_events == 1


def test_subscriber_failure_is_isolated(monitor, caplog):
    received = []

    def boom(event):
        raise RuntimeError("subscriber failed")

    monitor.subscribe(boom)
    unsubscribe = monitor.subscribe(received.append)

    event = log(monitor)

    assert received == [event]
    assert "Error in sync monitor subscriber" in caplog.text

    unsubscribe()
    log(monitor)
    assert len(received) == 1


def test_player_and_room_events_most_recent_first(monitor, clock):
    for i in range(5):
        clock.advance(10)
        log(monitor, player_id="p1" if i % 2 == 0 else "p2", room_code="ABC")
    log(monitor, player_id="p1", room_code="XYZ")

    p1 = monitor.get_player_events("p1", limit=2)
    assert len(p1) == 2
    assert p1[0].room_code == "XYZ"
    assert p1[0].timestamp >= p1[1].timestamp

    room = monitor.get_room_events("ABC")
    assert len(room) == 5
    assert [e.timestamp for e in room] == sorted((e.timestamp for e in room), reverse=True)


def test_analyze_sync_patterns(monitor, clock):
    log(monitor, EventKind.SEND)
    clock.advance(1000)
    log(monitor, EventKind.SEND)
    clock.advance(3000)
    log(monitor, EventKind.SEND)
    conflict = log(monitor, EventKind.CONFLICT)

    analysis = monitor.analyze_sync_patterns("p1")

    assert analysis.avg_time_between_updates == 2000.0
    assert analysis.conflict_rate == 25.0
    assert analysis.most_recent_conflict.id == conflict.id
    assert analysis.sync_health == SyncHealth.CRITICAL


@pytest.mark.parametrize("conflicts, sends, health", [
    (0, 10, SyncHealth.GOOD),
    (1, 19, SyncHealth.GOOD),
    (1, 9, SyncHealth.WARNING),
    (1, 3, SyncHealth.CRITICAL),
])
def test_sync_health_thresholds(monitor, conflicts, sends, health):
    for _ in range(sends):
        log(monitor, EventKind.SEND)
    for _ in range(conflicts):
        log(monitor, EventKind.CONFLICT)

    assert monitor.analyze_sync_patterns("p1").sync_health == health


def test_analyze_unknown_player(monitor):
    analysis = monitor.analyze_sync_patterns("ghost")
    assert analysis.conflict_rate == 0
    assert analysis.avg_time_between_updates == 0
    assert analysis.most_recent_conflict is None
    assert analysis.sync_health == SyncHealth.GOOD


def test_clear_events_zero_empties_log(monitor):
    log(monitor, room_code="ABC")
    log(monitor, room_code="XYZ")

    assert monitor.clear_events(0) == 2
    assert monitor.get_room_events("ABC") == []
    assert monitor.get_room_events("XYZ") == []


def test_clear_events_keeps_recent(monitor, clock):
    log(monitor, player_id="old")
    clock.advance(400_000)
    log(monitor, player_id="new")

    assert monitor.clear_events() == 1
    assert monitor.get_player_events("old") == []
    assert len(monitor.get_player_events("new")) == 1


def test_convenience_loggers_set_kind_and_source(monitor):
    send = log_send(monitor, "p1", "Alice", "A", "ABC", DATA, version=3)
    receive = log_receive(monitor, "p1", "Alice", "A", "ABC", DATA)
    conflict = log_conflict(monitor, "p1", "Alice", "A", "ABC", DATA)
    resolution = log_resolution(monitor, "p1", "Alice", "A", "ABC", DATA)

    assert (send.kind, send.source, send.version) == (EventKind.SEND, EventSource.CLIENT, 3)
    assert (receive.kind, receive.source) == (EventKind.RECEIVE, EventSource.SERVER)
    assert (conflict.kind, conflict.source) == (EventKind.CONFLICT, EventSource.CLIENT)
    assert (resolution.kind, resolution.source) == (EventKind.RESOLUTION, EventSource.SERVER)


def test_generate_sync_report(monitor):
    log(monitor, EventKind.SEND, player_id="p1")
    log(monitor, EventKind.CONFLICT, player_id="p1")
    log(monitor, EventKind.SEND, player_id="p2", room_code="OTHER")

    report = monitor.generate_sync_report("ABC")

    assert "SYNC REPORT FOR ROOM ABC" in report
    assert "Total Events: 2" in report
    assert "Active Players: 1" in report
    assert "Conflicts: 1" in report
    assert "Player: Alice" in report
    assert "Latest Total: €300.00" in report
    assert "Conflict Rate: 50.0%" in report
    assert "Health: CRITICAL" in report
