from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import func, inspect, select, table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fantasy.core.config import settings
from fantasy.core.errors import Conflict, FantasyError, InvalidSeason
from fantasy.db.base import COLLECTIONS, parse_season_table
from fantasy.db.session import make_session_factory
from fantasy.models.season import SeasonTables, build_season_tables
from fantasy.stores.drivers import DriverStore
from fantasy.stores.managers import ManagerStore
from fantasy.stores.races import EVENT_SCHEDULED, RaceStore
from fantasy.stores.rosters import RosterStore

logger = logging.getLogger(__name__)

COPYABLE = ("drivers", "managers", "races")
DEFAULT_COPY = ("drivers", "managers")


@dataclass(frozen=True)
class SeasonStores:
    year: int
    tables: SeasonTables
    drivers: DriverStore
    managers: ManagerStore
    races: RaceStore
    rosters: RosterStore


class SeasonRegistry:
    """Maps a season year to its isolated set of tables and stores.

    Created once at process start and handed to callers (the FastAPI app
    keeps it on ``app.state``). Store handles are built lazily on first
    resolution and cached behind a lock; building is idempotent, so a
    duplicate build by a concurrent caller would produce identical content.

    Args:
        engine: SQLAlchemy engine all seasons live in.
        min_season: Oldest accepted season (default ``settings.min_season``).
        horizon: How many years past the current one are accepted.
        clock: Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        min_season: Optional[int] = None,
        horizon: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.engine = engine
        self.session_factory = make_session_factory(engine)
        self.min_season = settings.min_season if min_season is None else min_season
        self.horizon = settings.season_horizon if horizon is None else horizon
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._stores: Dict[int, SeasonStores] = {}

    # -----------------------
    # Season identifiers
    # -----------------------
    def current_year(self) -> int:
        return self._clock().year

    def max_season(self) -> int:
        return self.current_year() + self.horizon

    def default_season(self) -> int:
        return self.validate_season(settings.season or self.current_year())

    def validate_season(self, year: Any) -> int:
        if isinstance(year, str) and year.strip().isdigit():
            year = int(year.strip())
        if isinstance(year, bool) or not isinstance(year, int):
            raise InvalidSeason(year, f"Invalid season: {year!r}. Must be an integer year")
        if not (self.min_season <= year <= self.max_season()):
            raise InvalidSeason(
                year,
                f"Invalid season: {year}. Must be between {self.min_season} and {self.max_season()}",
            )
        return year

    # -----------------------
    # Store resolution
    # -----------------------
    def resolve_stores(self, year: Any) -> SeasonStores:
        year = self.validate_season(year)
        stores = self._stores.get(year)
        if stores is not None:
            return stores
        with self._lock:
            stores = self._stores.get(year)
            if stores is None:
                stores = self._build(year)
                self._stores[year] = stores
        return stores

    def _build(self, year: int) -> SeasonStores:
        tables = build_season_tables(year)
        tables.metadata.create_all(self.engine, checkfirst=True)
        return SeasonStores(
            year=year,
            tables=tables,
            drivers=DriverStore(tables.drivers),
            managers=ManagerStore(tables.managers),
            races=RaceStore(tables.races),
            rosters=RosterStore(tables.rosters),
        )

    def initialize_season(self, year: Any) -> Dict[str, Any]:
        """Create the season's tables; refuses a season that already holds data."""
        year = self.validate_season(year)
        if year in self._season_years() and self._row_count(year) > 0:
            raise Conflict(
                f"Season {year} already has existing data. Use copy to populate from another season.",
                {"year": year},
            )
        stores = self.resolve_stores(year)
        logger.info("Initialized tables for season %s", year)
        return {"year": year, "collections": [t.name for t in stores.tables.all()]}

    # -----------------------
    # Enumeration & statistics
    # -----------------------
    def _season_years(self) -> Dict[int, List[str]]:
        found: Dict[int, List[str]] = {}
        for name in inspect(self.engine).get_table_names():
            parsed = parse_season_table(name)
            if parsed:
                found.setdefault(parsed[1], []).append(name)
        return found

    def _row_count(self, year: int) -> int:
        names = self._season_years().get(year, [])
        total = 0
        with self.engine.connect() as conn:
            for name in names:
                total += conn.execute(select(func.count()).select_from(table(name))).scalar_one()
        return int(total)

    def list_seasons(self) -> List[int]:
        """Valid seasons whose tables hold at least one row, newest first."""
        years = []
        for year in self._season_years():
            if not (self.min_season <= year <= self.max_season()):
                continue
            if self._row_count(year) > 0:
                years.append(year)
        return sorted(years, reverse=True)

    def season_statistics(self, year: Any) -> Dict[str, Any]:
        stores = self.resolve_stores(year)
        with self.session_factory() as db, db.begin():
            drivers = stores.drivers.totals(db)
            drivers["categories"] = stores.drivers.category_breakdown(db)
            return {
                "year": stores.year,
                "drivers": drivers,
                "managers": stores.managers.totals(db),
                "races": stores.races.counts(db),
                "rosters": stores.rosters.totals(db),
            }

    def compare_seasons(self, first: Any, second: Any) -> Dict[str, Any]:
        a = self.season_statistics(first)
        b = self.season_statistics(second)
        return {
            "seasons": [a["year"], b["year"]],
            "statistics": {str(a["year"]): a, str(b["year"]): b},
            "difference": {
                "drivers": {
                    "count": b["drivers"]["count"] - a["drivers"]["count"],
                    "total_value": b["drivers"]["total_value"] - a["drivers"]["total_value"],
                },
                "managers": {
                    "count": b["managers"]["count"] - a["managers"]["count"],
                    "total_budget": b["managers"]["total_budget"] - a["managers"]["total_budget"],
                },
                "races": {"count": b["races"]["count"] - a["races"]["count"]},
            },
        }

    # -----------------------
    # Copy / drop
    # -----------------------
    def copy_season(
        self, source: Any, target: Any, collections: Iterable[str] = DEFAULT_COPY
    ) -> Dict[str, Any]:
        """Copy collections from one season into another.

        Each collection is copied in its own transaction: a failing
        collection is rolled back and reported in ``errors`` while the
        others still land. Rosters are never copied.
        """
        source = self.validate_season(source)
        target = self.validate_season(target)
        if source == target:
            raise InvalidSeason(target, "Source and target seasons cannot be the same")
        src = self.resolve_stores(source)
        dst = self.resolve_stores(target)

        summary: Dict[str, Any] = {"source": source, "target": target, "errors": []}
        summary.update({name: 0 for name in COPYABLE})
        copiers = {
            "drivers": self._copy_drivers,
            "managers": self._copy_managers,
            "races": self._copy_races,
        }
        for name in dict.fromkeys(collections):
            if name not in copiers:
                summary["errors"].append(f"{name}: unknown collection")
                continue
            try:
                with self.session_factory() as db, db.begin():
                    summary[name] = copiers[name](db, src, dst)
            except (FantasyError, SQLAlchemyError) as exc:
                logger.warning("Copying %s from %s to %s failed: %s", name, source, target, exc)
                summary["errors"].append(f"{name}: {exc}")
        logger.info(
            "Copied season %s -> %s: %s",
            source, target, {k: summary[k] for k in COPYABLE},
        )
        return summary

    @staticmethod
    def _copy_drivers(db: Session, src: SeasonStores, dst: SeasonStores) -> int:
        rows = src.drivers.list(db, sort="id")
        for d in rows:
            dst.drivers.create(
                db,
                name=d["name"],
                categories=d["categories"],
                current_value=d["current_value"],
                previous_value=d["previous_value"],
                points=0.0,
                image_url=d["image_url"],
                description=d["description"],
            )
        return len(rows)

    @staticmethod
    def _copy_managers(db: Session, src: SeasonStores, dst: SeasonStores) -> int:
        # budget + committed roster spend is the season-opening budget
        committed = src.rosters.committed_budget(db)
        rows = src.managers.credential_rows(db)
        for m in rows:
            dst.managers.create(
                db,
                username=m["username"],
                credential_hash=m["credential_hash"],
                role=m["role"],
                budget=m["budget"] + committed.get(m["id"], 0.0),
                points=0.0,
            )
        return len(rows)

    @staticmethod
    def _copy_races(db: Session, src: SeasonStores, dst: SeasonStores) -> int:
        rows = src.races.list(db, sort="id")
        for r in rows:
            dst.races.create(
                db,
                round_number=r["round_number"],
                name=r["name"],
                location=r["location"],
                submission_deadline=r["submission_deadline"],
                events=[{**ev, "status": EVENT_SCHEDULED} for ev in r["events"]],
                is_locked=False,
            )
        return len(rows)

    def drop_season(self, year: Any) -> Dict[str, Any]:
        year = self.validate_season(year)
        if year == self.current_year():
            raise Conflict("Cannot delete data for the current season", {"year": year})
        stats = self.season_statistics(year)
        stores = self.resolve_stores(year)
        with self._lock:
            stores.tables.metadata.drop_all(self.engine, checkfirst=True)
            self._stores.pop(year, None)
        logger.info("Dropped all tables for season %s", year)
        return {
            "year": year,
            "stats_before_deletion": stats,
            "dropped": [f"{c}_{year}" for c in COLLECTIONS],
        }
