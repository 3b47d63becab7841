"""Points-per-million (PPM) settlement.

After a race meeting every driver of the season is re-priced against the
points the field was expected to score:

    ppm      = venue_points / total_driver_value
    expected = value * ppm
    change   = (gained - expected) / expected      (0 when expected is 0)
    new      = max(0, value * (1 + change))

Settlement is all-or-nothing: the race claim, every driver update and the
stored ``ppm_data`` commit in one transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from fantasy.core.config import settings
from fantasy.core.errors import AlreadyProcessed, DegenerateValuation, EmptyDriverPool, UnknownDriver
from fantasy.stores.common import as_utc, utcnow

logger = logging.getLogger(__name__)

VENUE_POINTS = 930.0


@dataclass
class DriverResult:
    driver_id: int
    points_gained: float = 0.0


def _as_result(item) -> DriverResult:
    if isinstance(item, DriverResult):
        return item
    if isinstance(item, dict):
        return DriverResult(int(item["driver_id"]), float(item.get("points_gained") or 0))
    driver_id, points = item
    return DriverResult(int(driver_id), float(points or 0))


def _round(value: float, places: int = 2) -> float:
    return round(value, places)


def compute_valuation(
    drivers: Sequence[Dict[str, Any]],
    results: Iterable,
    venue_points: float,
    year: int,
) -> Dict[str, Any]:
    """Pure re-pricing of a driver pool; nothing is read or written.

    Results for the same driver are summed. Drivers absent from the results
    scored zero.
    """
    if not drivers:
        raise EmptyDriverPool(year)
    total_value = float(sum(d["current_value"] or 0 for d in drivers))
    if total_value <= 0:
        raise DegenerateValuation(total_value)

    gained: Dict[int, float] = {}
    for r in map(_as_result, results or []):
        gained[r.driver_id] = gained.get(r.driver_id, 0.0) + r.points_gained
    known = {d["id"] for d in drivers}
    unknown = [i for i in gained if i not in known]
    if unknown:
        raise UnknownDriver(unknown)

    ppm = venue_points / total_value
    updates = []
    for d in drivers:
        value = float(d["current_value"] or 0)
        points = gained.get(d["id"], 0.0)
        expected = value * ppm
        change = (points - expected) / expected if expected else 0.0
        new_value = max(0.0, value * (1 + change))
        updates.append({
            "driver_id": d["id"],
            "driver_name": d["name"],
            "previous_value": value,
            "points_gained": points,
            "expected_points": expected,
            "value_change": new_value - value,
            "new_value": new_value,
            "percentage_change": change * 100,
        })

    return {
        "ppm": ppm,
        "venue_points": float(venue_points),
        "total_meeting_points": float(sum(gained.values())),
        "total_driver_value": total_value,
        "driver_updates": updates,
    }


def _history_row(race: Dict[str, Any]) -> Dict[str, Any]:
    data = race["ppm_data"] or {}
    return {
        "race_id": race["id"],
        "race_name": race["name"],
        "round_number": race["round_number"],
        "ppm": data.get("ppm"),
        "venue_points": data.get("venue_points", VENUE_POINTS),
        "total_meeting_points": data.get("total_meeting_points", 0.0),
        "total_driver_value": data.get("total_driver_value"),
        "processed_at": data.get("processed_at"),
    }


def _value_row(update: Dict[str, Any]) -> Dict[str, Any]:
    keys = (
        "driver_id", "driver_name", "previous_value", "new_value", "value_change",
        "points_gained", "expected_points", "percentage_change",
    )
    return {k: update.get(k) for k in keys}


class PPMSettlementEngine:
    def __init__(self, stores, venue_points: Optional[float] = None):
        self.stores = stores
        self.venue_points = settings.venue_points if venue_points is None else venue_points

    @property
    def year(self) -> int:
        return self.stores.year

    def settle(
        self,
        db: Session,
        race_id: int,
        results: Iterable,
        venue_points: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Re-price every driver from a race's results, exactly once per race.

        Raises UnknownRace, AlreadyProcessed, EmptyDriverPool,
        DegenerateValuation or UnknownDriver. On any failure nothing is
        written and the race stays unprocessed.
        """
        vp = self.venue_points if venue_points is None else float(venue_points)
        processed_at = (as_utc(now) or utcnow()).isoformat()
        results = list(results or [])
        s = self.stores
        with db.begin():
            race = s.races.require(db, race_id, for_update=True)
            if race["is_processed"]:
                raise AlreadyProcessed(race_id)
            drivers = s.drivers.list(db, sort="id")
            valuation = compute_valuation(drivers, results, vp, self.year)
            ppm_data = {**valuation, "processed_at": processed_at}

            # the conditional claim is what keeps two settlements apart
            if not s.races.mark_processed(db, race_id, ppm_data):
                raise AlreadyProcessed(race_id)
            for u in valuation["driver_updates"]:
                s.drivers.apply_valuation(
                    db,
                    u["driver_id"],
                    new_value=u["new_value"],
                    previous_value=u["previous_value"],
                    points_gained=u["points_gained"],
                )

        logger.info(
            "Season %s: settled race %s (ppm %.6f, %d drivers, %.1f meeting points)",
            self.year, race_id, valuation["ppm"], len(drivers), valuation["total_meeting_points"],
        )
        return {
            "race_id": race_id,
            "drivers_processed": len(valuation["driver_updates"]),
            **ppm_data,
        }

    def simulate(
        self, db: Session, race_id: int, results: Iterable, venue_points: Optional[float] = None
    ) -> Dict[str, Any]:
        """Preview of ``settle``; processed races may be simulated too."""
        vp = self.venue_points if venue_points is None else float(venue_points)
        s = self.stores
        with db.begin():
            race = s.races.require(db, race_id)
            drivers = s.drivers.list(db, sort="id")
        valuation = compute_valuation(drivers, list(results or []), vp, self.year)
        return {
            "race_id": race_id,
            "race_name": race["name"],
            "is_processed": race["is_processed"],
            "drivers_processed": len(valuation["driver_updates"]),
            **valuation,
        }

    def history(self, db: Session, limit: int = 10) -> List[Dict[str, Any]]:
        with db.begin():
            races = self.stores.races.processed(db, limit=limit, order="desc")
        return [_history_row(r) for r in races]

    def driver_analysis(self, db: Session, driver_id: int) -> Dict[str, Any]:
        s = self.stores
        with db.begin():
            driver = s.drivers.require(db, driver_id)
            races = s.races.processed(db, order="asc")

        performance = []
        for race in races:
            updates = (race["ppm_data"] or {}).get("driver_updates") or []
            update = next((u for u in updates if u.get("driver_id") == driver_id), None)
            if update is None:
                continue
            performance.append({
                "race_id": race["id"],
                "race_name": race["name"],
                "round_number": race["round_number"],
                "previous_value": update["previous_value"],
                "new_value": update["new_value"],
                "points_gained": update["points_gained"],
                "expected_points": update["expected_points"],
                "value_change": update["value_change"],
                "percentage_change": update["percentage_change"],
                "outperformed": update["points_gained"] > update["expected_points"],
            })

        n = len(performance)
        outperformances = sum(1 for p in performance if p["outperformed"])
        avg_gained = sum(p["points_gained"] for p in performance) / n if n else 0.0
        avg_expected = sum(p["expected_points"] for p in performance) / n if n else 0.0
        return {
            "driver": {
                "id": driver["id"],
                "name": driver["name"],
                "current_value": driver["current_value"],
                "total_points": driver["points"],
            },
            "performance": performance,
            "statistics": {
                "total_races": n,
                "outperformances": outperformances,
                "outperformance_rate": outperformances / n * 100 if n else 0.0,
                "avg_points_gained": avg_gained,
                "avg_expected_points": avg_expected,
                "avg_performance_diff": avg_gained - avg_expected,
            },
        }

    def season_summary(self, db: Session) -> Dict[str, Any]:
        with db.begin():
            history = [_history_row(r) for r in self.stores.races.processed(db, order="desc")]
        if not history:
            return {
                "year": self.year,
                "total_races": 0,
                "total_points": 0.0,
                "avg_ppm": 0.0,
                "avg_meeting_points": 0.0,
            }

        n = len(history)
        total_points = sum(h["total_meeting_points"] for h in history)
        by_ppm = sorted(history, key=lambda h: h["ppm"], reverse=True)

        def _brief(h):
            return {
                "race": h["race_name"],
                "round": h["round_number"],
                "ppm": h["ppm"],
                "venue_points": h["venue_points"],
                "total_driver_value": h["total_driver_value"],
            }

        return {
            "year": self.year,
            "total_races": n,
            "total_points": total_points,
            "avg_ppm": _round(sum(h["ppm"] for h in history) / n, 6),
            "avg_meeting_points": _round(total_points / n),
            "avg_venue_points": _round(sum(h["venue_points"] for h in history) / n),
            "avg_total_driver_value": _round(sum(h["total_driver_value"] for h in history) / n),
            "highest_ppm": _brief(by_ppm[0]),
            "lowest_ppm": _brief(by_ppm[-1]),
            "recent_races": history[:5],
        }

    def value_changes(self, db: Session, limit: int = 10) -> Dict[str, Any]:
        """Biggest movers of the most recently settled race."""
        with db.begin():
            latest = self.stores.races.processed(db, limit=1, order="desc")
        if not latest:
            return {"race": None, "increases": [], "decreases": []}

        race = latest[0]
        updates = (race["ppm_data"] or {}).get("driver_updates") or []
        increases = sorted((u for u in updates if u["value_change"] > 0), key=lambda u: -u["value_change"])
        decreases = sorted((u for u in updates if u["value_change"] < 0), key=lambda u: u["value_change"])
        row = _history_row(race)
        return {
            "race": {
                "id": row["race_id"],
                "name": row["race_name"],
                "round": row["round_number"],
                "ppm": row["ppm"],
                "venue_points": row["venue_points"],
                "total_driver_value": row["total_driver_value"],
            },
            "increases": [_value_row(u) for u in increases[:limit]],
            "decreases": [_value_row(u) for u in decreases[:limit]],
        }
