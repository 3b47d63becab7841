import threading
from datetime import datetime, timedelta, timezone

import pytest

from fantasy.core.errors import AlreadyProcessed, DegenerateValuation, EmptyDriverPool, UnknownDriver, UnknownRace
from fantasy.services.ppm import DriverResult, PPMSettlementEngine, compute_valuation

YEAR = 2023


@pytest.fixture
def pool(registry, db):
    """Two drivers worth 50 each and two races."""
    stores = registry.resolve_stores(YEAR)
    deadline = datetime.now(timezone.utc) + timedelta(days=7)
    with db.begin():
        a = stores.drivers.create(db, name="Turkington", categories=["M"], current_value=50)
        b = stores.drivers.create(db, name="Sutton", categories=["JS"], current_value=50)
        r1 = stores.races.create(db, round_number=1, name="Donington", submission_deadline=deadline)
        r2 = stores.races.create(db, round_number=2, name="Brands Hatch", submission_deadline=deadline)
    return stores, a, b, r1, r2


@pytest.fixture
def settlement(pool):
    return PPMSettlementEngine(pool[0])


def test_compute_valuation_example():
    drivers = [
        {"id": 1, "name": "A", "current_value": 50},
        {"id": 2, "name": "B", "current_value": 50},
    ]
    out = compute_valuation(drivers, [DriverResult(1, 500), DriverResult(2, 400)], 930, YEAR)
    assert out["ppm"] == pytest.approx(9.3)
    a, b = out["driver_updates"]
    assert a["expected_points"] == pytest.approx(465)
    assert a["new_value"] == pytest.approx(53.76, abs=0.01)
    assert b["new_value"] == pytest.approx(43.01, abs=0.01)
    assert a["percentage_change"] == pytest.approx(7.5269, abs=1e-3)
    assert out["total_meeting_points"] == 900


def test_compute_valuation_edge_cases():
    with pytest.raises(EmptyDriverPool):
        compute_valuation([], [], 930, YEAR)
    with pytest.raises(DegenerateValuation):
        compute_valuation([{"id": 1, "name": "A", "current_value": 0}], [], 930, YEAR)
    with pytest.raises(UnknownDriver):
        compute_valuation([{"id": 1, "name": "A", "current_value": 5}], [(7, 10)], 930, YEAR)

    drivers = [
        {"id": 1, "name": "A", "current_value": 10},
        {"id": 2, "name": "B", "current_value": 0},
    ]
    out = compute_valuation(drivers, [{"driver_id": 2, "points_gained": 30}], 930, YEAR)
    a, b = out["driver_updates"]
    # zero expected points means no change; no points means the floor
    assert b["new_value"] == 0 and b["value_change"] == 0
    assert a["new_value"] == 0


def test_duplicate_results_are_summed():
    drivers = [{"id": 1, "name": "A", "current_value": 50}, {"id": 2, "name": "B", "current_value": 50}]
    split = compute_valuation(drivers, [(1, 200), (1, 300), (2, 400)], 930, YEAR)
    whole = compute_valuation(drivers, [(1, 500), (2, 400)], 930, YEAR)
    assert split["driver_updates"] == whole["driver_updates"]


def test_settle_updates_every_driver(settlement, pool, db):
    stores, a, b, r1, _ = pool
    result = settlement.settle(db, r1["id"], [DriverResult(a["id"], 500), DriverResult(b["id"], 400)])
    assert result["drivers_processed"] == 2
    assert result["ppm"] == pytest.approx(9.3)

    with db.begin():
        da = stores.drivers.get(db, a["id"])
        db_ = stores.drivers.get(db, b["id"])
        race = stores.races.get(db, r1["id"])
    assert da["current_value"] == pytest.approx(53.7634, abs=1e-3)
    assert da["previous_value"] == 50
    assert da["points"] == 500
    assert db_["current_value"] == pytest.approx(43.0108, abs=1e-3)
    assert race["is_processed"]
    data = race["ppm_data"]
    assert set(data) >= {"ppm", "venue_points", "total_meeting_points", "total_driver_value",
                         "processed_at", "driver_updates"}
    assert data["total_driver_value"] == 100
    assert data["driver_updates"][0]["driver_name"] == "Turkington"
    datetime.fromisoformat(data["processed_at"])


def test_settle_twice(settlement, pool, db):
    _, a, _, r1, _ = pool
    settlement.settle(db, r1["id"], [(a["id"], 10)])
    with pytest.raises(AlreadyProcessed):
        settlement.settle(db, r1["id"], [(a["id"], 10)])


def test_settle_unknown_race(settlement, db, pool):
    with pytest.raises(UnknownRace):
        settlement.settle(db, 999, [])


def test_degenerate_valuation_leaves_race_unprocessed(settlement, pool, db):
    stores, a, b, r1, _ = pool
    with db.begin():
        stores.drivers.update(db, a["id"], {"current_value": 0})
        stores.drivers.update(db, b["id"], {"current_value": 0})
    with pytest.raises(DegenerateValuation):
        settlement.settle(db, r1["id"], [])
    with db.begin():
        assert not stores.races.get(db, r1["id"])["is_processed"]


def test_settle_rolls_back_on_failure(settlement, pool, db, monkeypatch):
    stores, a, b, r1, _ = pool
    real = stores.drivers.apply_valuation
    calls = []

    def flaky(session, driver_id, **kw):
        calls.append(driver_id)
        if len(calls) == 2:
            raise RuntimeError("storage went away")
        return real(session, driver_id, **kw)

    monkeypatch.setattr(stores.drivers, "apply_valuation", flaky)
    with pytest.raises(RuntimeError):
        settlement.settle(db, r1["id"], [(a["id"], 500), (b["id"], 400)])

    with db.begin():
        assert stores.drivers.get(db, a["id"])["current_value"] == 50
        assert stores.drivers.get(db, a["id"])["points"] == 0
        race = stores.races.get(db, r1["id"])
    assert not race["is_processed"]
    assert race["ppm_data"] is None


def test_unknown_result_driver_writes_nothing(settlement, pool, db):
    stores, a, _, r1, _ = pool
    with pytest.raises(UnknownDriver):
        settlement.settle(db, r1["id"], [(a["id"], 10), (999, 5)])
    with db.begin():
        assert not stores.races.get(db, r1["id"])["is_processed"]


def test_simulate_does_not_write(settlement, pool, db):
    stores, a, b, r1, _ = pool
    preview = settlement.simulate(db, r1["id"], [(a["id"], 500), (b["id"], 400)], venue_points=930)
    assert preview["driver_updates"][0]["new_value"] == pytest.approx(53.76, abs=0.01)
    with db.begin():
        assert stores.drivers.get(db, a["id"])["current_value"] == 50
        assert not stores.races.get(db, r1["id"])["is_processed"]


def test_history_analysis_and_summary(settlement, pool, db):
    _, a, b, r1, r2 = pool
    settlement.settle(db, r1["id"], [(a["id"], 500), (b["id"], 400)])
    settlement.settle(db, r2["id"], [(a["id"], 100), (b["id"], 800)], venue_points=900)

    history = settlement.history(db, limit=10)
    assert [h["round_number"] for h in history] == [2, 1]
    assert settlement.history(db, limit=1)[0]["race_name"] == "Brands Hatch"

    analysis = settlement.driver_analysis(db, a["id"])
    assert [p["round_number"] for p in analysis["performance"]] == [1, 2]
    stats = analysis["statistics"]
    assert stats["total_races"] == 2
    assert stats["outperformances"] == 1
    assert stats["outperformance_rate"] == pytest.approx(50)
    assert analysis["driver"]["total_points"] == 600

    summary = settlement.season_summary(db)
    assert summary["total_races"] == 2
    assert summary["total_points"] == 1800
    assert summary["recent_races"][0]["round_number"] == 2

    changes = settlement.value_changes(db)
    assert changes["race"]["round"] == 2
    assert [c["driver_name"] for c in changes["increases"]] == ["Sutton"]
    assert [c["driver_name"] for c in changes["decreases"]] == ["Turkington"]


def test_reads_on_empty_season(registry, db):
    engine = PPMSettlementEngine(registry.resolve_stores(2022))
    assert engine.history(db) == []
    assert engine.season_summary(db)["total_races"] == 0
    assert engine.value_changes(db) == {"race": None, "increases": [], "decreases": []}


def test_concurrent_settlement_only_one_wins(registry, pool):
    stores, a, b, r1, _ = pool
    barrier = threading.Barrier(2)
    outcomes = []

    def worker():
        engine = PPMSettlementEngine(stores)
        with registry.session_factory() as session:
            barrier.wait()
            try:
                engine.settle(session, r1["id"], [(a["id"], 500), (b["id"], 400)])
                outcomes.append("settled")
            except AlreadyProcessed:
                outcomes.append("already")

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["already", "settled"]
    with registry.session_factory() as session, session.begin():
        # applied exactly once
        assert stores.drivers.get(session, a["id"])["points"] == 500
