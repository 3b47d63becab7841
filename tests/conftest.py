from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from fantasy.core.caller import Caller
from fantasy.db.session import build_engine
from fantasy.main import create_app
from fantasy.services.seasons import SeasonRegistry

# registry clock; roster deadlines are compared against the real clock
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
SEASON = 2025
ADMIN = Caller(manager_id=None, role="admin")
ADMIN_HEADERS = {"X-Manager-Role": "admin"}


@pytest.fixture
def engine(tmp_path):
    # file-backed so separate sessions (and threads) see each other's commits
    eng = build_engine(f"sqlite:///{tmp_path / 'fantasy.db'}", echo=False)
    yield eng
    eng.dispose()


@pytest.fixture
def registry(engine):
    return SeasonRegistry(engine, min_season=2000, horizon=5, clock=lambda: NOW)


@pytest.fixture
def stores(registry):
    return registry.resolve_stores(SEASON)


@pytest.fixture
def db(registry):
    session = registry.session_factory()
    yield session
    session.close()


def seed_season(stores, db):
    future = datetime.now(timezone.utc) + timedelta(days=30)
    past = datetime.now(timezone.utc) - timedelta(days=1)
    with db.begin():
        drivers = {
            "ham": stores.drivers.create(db, name="Hamilton", categories=["M"], current_value=10),
            "ver": stores.drivers.create(db, name="Verstappen", categories=["JS"], current_value=12),
            "nor": stores.drivers.create(db, name="Norris", categories=["I"], current_value=8),
            "lec": stores.drivers.create(db, name="Leclerc", categories=["M", "JS"], current_value=15),
            "pia": stores.drivers.create(db, name="Piastri", categories=["I"], current_value=5),
        }
        managers = {
            "alice": stores.managers.create(db, username="alice", credential_hash="h-alice", budget=100),
            "bob": stores.managers.create(db, username="bob", credential_hash="h-bob", budget=20),
            "root": stores.managers.create(db, username="root", credential_hash="h-root", role="admin"),
        }
        races = {
            "open": stores.races.create(
                db,
                round_number=1,
                name="Brands Hatch",
                location="Kent",
                submission_deadline=future,
                events=[{"title": "Race 1"}, {"title": "Race 2"}],
            ),
            "locked": stores.races.create(
                db, round_number=2, name="Donington", submission_deadline=future, is_locked=True
            ),
            "closed": stores.races.create(db, round_number=3, name="Thruxton", submission_deadline=past),
        }
    return SimpleNamespace(drivers=drivers, managers=managers, races=races)


@pytest.fixture
def season(stores, db):
    return seed_season(stores, db)


@pytest.fixture
def as_alice(season):
    return Caller(manager_id=season.managers["alice"]["id"], role="user")


@pytest.fixture
def client(registry):
    with TestClient(create_app(registry)) as c:
        yield c
