from datetime import datetime, timedelta, timezone

import pytest

from fantasy.core.errors import InvalidEntity


def test_driver_create_rejects_negative_value(stores, db):
    with db.begin():
        with pytest.raises(InvalidEntity) as exc:
            stores.drivers.create(db, name="Ingram", categories=["M"], current_value=-5)
        assert exc.value.details == {"current_value": -5.0}
        assert exc.value.status_code == 400
        assert stores.drivers.list(db) == []


def test_driver_update_rejects_negative_points(stores, db, season):
    driver_id = season.drivers["ham"]["id"]
    with db.begin():
        with pytest.raises(InvalidEntity):
            stores.drivers.update(db, driver_id, {"points": -1})
        assert stores.drivers.require(db, driver_id)["points"] == 0


def test_manager_create_rejects_negative_points(stores, db):
    with db.begin():
        with pytest.raises(InvalidEntity) as exc:
            stores.managers.create(db, username="carol", credential_hash="h", points=-1)
        assert "points" in exc.value.details
        assert stores.managers.find_by_username(db, "carol") is None


def test_manager_create_rejects_negative_budget(stores, db):
    with db.begin():
        with pytest.raises(InvalidEntity):
            stores.managers.create(db, username="carol", credential_hash="h", budget=-10)


def test_manager_update_rejects_negative_points(stores, db, season):
    alice = season.managers["alice"]["id"]
    with db.begin():
        with pytest.raises(InvalidEntity):
            stores.managers.update(db, alice, {"points": -3})


def test_race_list_filters_on_event_status(stores, db):
    deadline = datetime.now(timezone.utc) + timedelta(days=7)
    with db.begin():
        stores.races.create(db, round_number=1, name="Snetterton", submission_deadline=deadline,
                            events=[{"title": "Race 1", "status": "completed"}, {"title": "Race 2"}])
        stores.races.create(db, round_number=2, name="Oulton Park", submission_deadline=deadline,
                            events=[{"title": "Race 1", "status": "active"}])
        stores.races.create(db, round_number=3, name="Croft", submission_deadline=deadline)

        assert [r["name"] for r in stores.races.list(db, status="completed")] == ["Snetterton"]
        assert [r["name"] for r in stores.races.list(db, status="active")] == ["Oulton Park"]
        assert [r["name"] for r in stores.races.list(db, status="scheduled")] == ["Snetterton"]
        assert len(stores.races.list(db)) == 3
        with pytest.raises(InvalidEntity):
            stores.races.list(db, status="cancelled")
