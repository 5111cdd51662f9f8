import pytest

from core.exceptions import ReentrantMutationError, RoomAlreadyExists, RoomNotFound
from core.room_ledger import RoomLedger, RoomRegistry


@pytest.fixture
def ledger(clock):
    return RoomLedger("ABC", clock=clock)


def test_update_player_stores_sanitized_record(ledger, payload, clock):
    assert ledger.update_player("p1", payload(id="ignored"))

    player = ledger.get_player("p1")
    assert player.id == "p1"
    assert player.name == "Alice"
    assert player.total_value == 300.0
    assert player.last_update == clock.now


def test_update_player_bumps_version_and_notifies(ledger, payload, clock):
    states = []
    ledger.subscribe(states.append)
    clock.advance(50)

    ledger.update_player("p1", payload())

    assert ledger.version == 2
    assert len(states) == 1
    assert states[0].version == 2
    assert states[0].last_sync == clock.now
    assert "p1" in states[0].players


@pytest.mark.parametrize("overrides", [{"cashBalance": -5}, {"name": ""}])
def test_rejected_update_leaves_prior_record_untouched(ledger, payload, overrides):
    ledger.update_player("p1", payload())
    before = ledger.get_player("p1").model_dump_json()
    states = []
    ledger.subscribe(states.append)

    assert ledger.update_player("p1", payload(**overrides)) is False

    assert ledger.get_player("p1").model_dump_json() == before
    assert ledger.version == 2
    assert states == []


def test_rejected_update_logs_warning(ledger, payload, caplog):
    caplog.set_level("WARNING")
    ledger.update_player("p1", payload(cashBalance=-5))
    assert "Rejected invalid player data" in caplog.text


def test_update_player_corrects_total(ledger, payload, caplog):
    caplog.set_level("WARNING")
    ledger.update_player("p1", payload(totalValue=1.0))

    assert ledger.get_player("p1").total_value == 300.0
    assert "Total value inconsistency" in caplog.text


def test_update_player_within_one_cent_keeps_total(ledger, payload, caplog):
    caplog.set_level("WARNING")
    ledger.update_player("p1", payload(totalValue=300.01))

    assert ledger.get_player("p1").total_value == 300.01
    assert "Total value inconsistency" not in caplog.text


def test_get_player_returns_copy(ledger, payload):
    ledger.update_player("p1", payload())
    ledger.get_player("p1").portfolio["BTC"] = 999
    assert ledger.get_player("p1").portfolio == {"BTC": 2}


def test_get_player_missing(ledger):
    assert ledger.get_player("nobody") is None


def test_get_all_players_sorted_with_stable_ranks(ledger, payload):
    ledger.update_player("a", payload(name="A", cashBalance=50, portfolioValue=0, totalValue=50))
    ledger.update_player("b", payload(name="B", cashBalance=80, portfolioValue=0, totalValue=80))
    ledger.update_player("c", payload(name="C", cashBalance=50, portfolioValue=0, totalValue=50))
    ledger.update_player("d", payload(name="D", cashBalance=10, portfolioValue=0, totalValue=10))

    ranked = ledger.get_all_players()

    assert [p.id for p in ranked] == ["b", "a", "c", "d"]
    assert [p.rank for p in ranked] == [1, 2, 3, 4]


def test_update_prices_revalues_players(ledger, payload, clock):
    ledger.update_player("p1", payload(cashBalance=12.345, portfolioValue=0, totalValue=12.35))
    clock.advance(1000)

    ledger.update_prices({"BTC": 100})

    player = ledger.get_player("p1")
    assert player.portfolio_value == 200.0
    assert player.total_value == 212.35
    assert player.last_update == clock.now


def test_update_prices_keeps_last_update_on_noise(ledger, payload, clock):
    ledger.update_player("p1", payload(cashBalance=100, portfolioValue=200, totalValue=300))
    stamped = ledger.get_player("p1").last_update
    clock.advance(1000)

    ledger.update_prices({"BTC": 100.004})

    player = ledger.get_player("p1")
    assert player.portfolio_value == 200.01
    assert player.last_update == stamped


def test_update_prices_missing_symbol_counts_as_zero(ledger, payload):
    ledger.update_player("p1", payload(portfolio={"BTC": 2, "DOGE": 1000}))
    ledger.update_prices({"BTC": 100})

    assert ledger.get_player("p1").portfolio_value == 200.0
    assert ledger.get_state().prices == {"BTC": 100}


def test_update_prices_replaces_table_wholesale(ledger):
    ledger.update_prices({"BTC": 1, "ETH": 2})
    ledger.update_prices({"SOL": 3})
    assert ledger.get_state().prices == {"SOL": 3}


def test_update_prices_notifies_once(ledger, payload):
    ledger.update_player("p1", payload())
    ledger.update_player("p2", payload(name="Bob"))
    states = []
    ledger.subscribe(states.append)
    version = ledger.version

    ledger.update_prices({"BTC": 500})

    assert len(states) == 1
    assert ledger.version == version + 1


def test_update_prices_on_empty_room(clock):
    ledger = RoomLedger("ABC", clock=clock)
    calls = []
    ledger.subscribe(calls.append)

    ledger.update_prices({"ETH": 10})

    assert ledger.version == 2
    assert len(calls) == 1


def test_remove_player(ledger, payload):
    ledger.update_player("p1", payload())
    states = []
    ledger.subscribe(states.append)

    ledger.remove_player("p1")

    assert ledger.get_player("p1") is None
    assert ledger.version == 3
    assert states[0].players == {}


def test_unsubscribe(ledger, payload):
    calls = []
    unsubscribe = ledger.subscribe(calls.append)
    unsubscribe()
    unsubscribe()

    ledger.update_player("p1", payload())
    assert calls == []


def test_snapshot_is_isolated_from_later_mutations(ledger, payload):
    ledger.update_player("p1", payload())
    state = ledger.get_state()

    ledger.update_prices({"BTC": 1})

    assert state.players["p1"].portfolio_value == 200.0
    with pytest.raises(Exception):
        state.version = 99


def test_subscriber_exception_propagates_and_stops_fanout(ledger, payload):
    calls = []

    def boom(state):
        raise RuntimeError("subscriber failed")

    ledger.subscribe(boom)
    ledger.subscribe(calls.append)

    with pytest.raises(RuntimeError):
        ledger.update_player("p1", payload())

    assert calls == []
    assert ledger.get_player("p1") is not None


def test_reentrant_mutation_is_rejected(ledger, payload):
    errors = []

    def reenter(state):
        try:
            ledger.remove_player("p1")
        except ReentrantMutationError as e:
            errors.append(e)

    ledger.subscribe(reenter)
    ledger.update_player("p1", payload())

    assert len(errors) == 1
    assert ledger.get_player("p1") is not None
    assert ledger.version == 2

    # 通知結束後可以正常修改
    ledger.remove_player("p1")
    assert ledger.get_player("p1") is None


def test_subscriber_may_read_during_notification(ledger, payload):
    seen = []
    ledger.subscribe(lambda state: seen.append(ledger.get_player("p1").name))
    ledger.update_player("p1", payload())
    assert seen == ["Alice"]


# ============ RoomRegistry ============

def test_registry_get_or_create_returns_same_ledger(clock):
    registry = RoomRegistry(clock=clock)
    assert registry.get_or_create("ABC") is registry.get_or_create("ABC")
    assert "ABC" in registry
    assert len(registry) == 1


def test_registry_create_room_generates_code(clock):
    registry = RoomRegistry(clock=clock)
    ledger = registry.create_room()

    assert len(ledger.room_code) == 6
    assert ledger.room_code.isupper()
    assert registry.get(ledger.room_code) is ledger


def test_registry_rejects_duplicate_code(clock):
    registry = RoomRegistry(clock=clock)
    registry.create_room("ABC")
    with pytest.raises(RoomAlreadyExists):
        registry.create_room("ABC")


def test_registry_destroy(clock, payload):
    registry = RoomRegistry(clock=clock)
    ledger = registry.create_room("ABC")
    calls = []
    ledger.subscribe(calls.append)

    assert registry.destroy("ABC")
    assert not registry.destroy("ABC")
    with pytest.raises(RoomNotFound):
        registry.get("ABC")

    ledger.update_player("p1", payload())
    assert calls == []
    assert registry.get_or_create("ABC") is not ledger
