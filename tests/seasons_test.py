import pytest
from sqlalchemy import inspect

from fantasy.core.errors import Conflict, InvalidSeason
from fantasy.services.rosters import RosterService

from conftest import SEASON, seed_season


@pytest.mark.parametrize("year", [2000, 2025, 2030, "2024"])
def test_validate_season_accepts_range(registry, year):
    assert registry.validate_season(year) == int(year)


@pytest.mark.parametrize("year", [1999, 2031, "abc", True, 2024.5, None])
def test_validate_season_rejects(registry, year):
    with pytest.raises(InvalidSeason):
        registry.validate_season(year)


def test_resolve_stores_is_cached_and_creates_tables(registry, engine):
    first = registry.resolve_stores(2024)
    assert registry.resolve_stores("2024") is first
    names = set(inspect(engine).get_table_names())
    assert {"drivers_2024", "managers_2024", "races_2024", "rosters_2024"} <= names


def test_list_seasons_only_counts_seasons_with_rows(registry, stores, db):
    registry.resolve_stores(2026)
    assert registry.list_seasons() == []
    seed_season(stores, db)
    assert registry.list_seasons() == [SEASON]

    other = registry.resolve_stores(2021)
    with db.begin():
        other.drivers.create(db, name="Solo", categories=["M"], current_value=1)
    assert registry.list_seasons() == [SEASON, 2021]


def test_initialize_season_refuses_existing_data(registry, season):
    with pytest.raises(Conflict):
        registry.initialize_season(SEASON)
    result = registry.initialize_season(2026)
    assert result["year"] == 2026
    assert "rosters_2026" in result["collections"]


def test_copy_season_resets_points_and_restores_opening_budget(registry, stores, db, season, as_alice):
    alice = season.managers["alice"]
    d = season.drivers
    RosterService(stores).create(
        db, as_alice,
        manager_id=alice["id"],
        race_id=season.races["open"]["id"],
        driver_ids=[d["ham"]["id"], d["ver"]["id"], d["nor"]["id"]],
    )
    with db.begin():
        stores.drivers.update(db, d["ham"]["id"], {"points": 42})
        stores.managers.update(db, alice["id"], {"points": 7})

    summary = registry.copy_season(SEASON, 2026)
    assert summary["drivers"] == 5
    assert summary["managers"] == 3
    assert summary["races"] == 0
    assert summary["errors"] == []

    target = registry.resolve_stores(2026)
    with db.begin():
        drivers = target.drivers.list(db)
        copied_alice = target.managers.find_by_username(db, "alice")
        rosters = target.rosters.list(db)
    assert all(x["points"] == 0 for x in drivers)
    assert copied_alice["points"] == 0
    # 70 left plus the 30 held by the roster
    assert copied_alice["budget"] == pytest.approx(100)
    assert rosters == []


def test_copy_races_are_reset(registry, stores, db, season):
    summary = registry.copy_season(SEASON, 2027, ["races"])
    assert summary["races"] == 3
    target = registry.resolve_stores(2027)
    with db.begin():
        races = target.races.list(db)
    assert [r["is_locked"] for r in races] == [False, False, False]
    assert all(not r["is_processed"] and r["ppm_data"] is None for r in races)
    assert {ev["status"] for ev in races[0]["events"]} == {"scheduled"}


def test_copy_collects_errors_per_collection(registry, season):
    registry.copy_season(SEASON, 2026, ["drivers"])
    summary = registry.copy_season(SEASON, 2026, ["drivers", "managers", "teams"])
    assert summary["drivers"] == 0
    assert summary["managers"] == 3
    assert any(e.startswith("drivers:") for e in summary["errors"])
    assert "teams: unknown collection" in summary["errors"]
    # the failed collection rolled back as a whole
    assert registry.season_statistics(2026)["drivers"]["count"] == 5


def test_copy_same_season_rejected(registry, season):
    with pytest.raises(InvalidSeason):
        registry.copy_season(SEASON, SEASON)


def test_season_statistics_and_compare(registry, season):
    stats = registry.season_statistics(SEASON)
    assert stats["drivers"]["count"] == 5
    assert stats["drivers"]["total_value"] == pytest.approx(50)
    assert stats["drivers"]["categories"]["M"]["count"] == 2
    assert stats["managers"] == pytest.approx({"count": 3, "total_budget": 120})
    assert stats["races"] == {"count": 3, "processed": 0}
    assert stats["rosters"]["count"] == 0

    registry.copy_season(SEASON, 2026, ["drivers"])
    cmp = registry.compare_seasons(SEASON, 2026)
    assert cmp["seasons"] == [SEASON, 2026]
    assert cmp["difference"]["drivers"]["count"] == 0
    assert cmp["difference"]["managers"]["count"] == -3
    assert cmp["difference"]["races"]["count"] == -3


def test_drop_season(registry, engine, db):
    with pytest.raises(Conflict):
        registry.drop_season(SEASON)

    old = registry.resolve_stores(2024)
    seed_season(old, db)
    result = registry.drop_season(2024)
    assert result["stats_before_deletion"]["drivers"]["count"] == 5
    assert "drivers_2024" not in inspect(engine).get_table_names()
    assert 2024 not in registry.list_seasons()
    # resolving again recreates empty tables
    with db.begin():
        assert registry.resolve_stores(2024).drivers.list(db) == []


def test_seasons_are_isolated(registry, stores, db, season):
    other = registry.resolve_stores(2024)
    with db.begin():
        # same name is fine in another season
        other.drivers.create(db, name="Hamilton", categories=["M"], current_value=99)
        assert len(other.drivers.list(db)) == 1
        assert len(stores.drivers.list(db)) == 5
