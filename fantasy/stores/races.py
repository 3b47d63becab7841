from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.orm import Session

from fantasy.core.errors import InvalidEntity, UnknownRace
from fantasy.stores.common import as_utc, order_by

UPDATABLE = ("round_number", "name", "location", "events", "submission_deadline", "is_locked")
SORTABLE = ("round_number", "name", "submission_deadline", "is_locked", "id")
EVENT_SCHEDULED = "scheduled"
EVENT_STATUSES = (EVENT_SCHEDULED, "active", "completed")


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return str(value)


def normalize_events(events: Optional[Iterable[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    out = []
    for ev in events or []:
        if not ev.get("title"):
            raise InvalidEntity("Race events need a title")
        out.append({
            "title": ev["title"],
            "starttime": _iso(ev.get("starttime")),
            "endtime": _iso(ev.get("endtime")),
            "status": ev.get("status") or EVENT_SCHEDULED,
        })
    return out


def _race(row) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    race = dict(row)
    race["submission_deadline"] = as_utc(race["submission_deadline"])
    race["events"] = race.get("events") or []
    return race


class RaceStore:
    def __init__(self, table):
        self.table = table

    def create(
        self,
        db: Session,
        *,
        round_number: int,
        name: str,
        submission_deadline: datetime,
        location: Optional[str] = None,
        events: Optional[Iterable[Dict[str, Any]]] = None,
        is_locked: bool = False,
    ) -> Dict[str, Any]:
        if not name:
            raise InvalidEntity("Race name is required")
        res = db.execute(
            insert(self.table).values(
                round_number=int(round_number),
                name=name,
                location=location,
                events=normalize_events(events),
                submission_deadline=as_utc(submission_deadline),
                is_locked=bool(is_locked),
                is_processed=False,
                ppm_data=None,
            )
        )
        return self.require(db, res.inserted_primary_key[0])

    def get(self, db: Session, race_id: int, for_update: bool = False) -> Optional[Dict[str, Any]]:
        t = self.table
        q = select(t).where(t.c.id == race_id)
        if for_update:
            q = q.with_for_update()
        return _race(db.execute(q).mappings().first())

    def require(self, db: Session, race_id: int, for_update: bool = False) -> Dict[str, Any]:
        race = self.get(db, race_id, for_update=for_update)
        if race is None:
            raise UnknownRace(race_id)
        return race

    def list(
        self, db: Session, sort: str = "round_number", order: str = "asc", status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Races of the season; ``status`` keeps races with at least one event in that state."""
        if status is not None and status not in EVENT_STATUSES:
            raise InvalidEntity(f"Status must be one of {', '.join(EVENT_STATUSES)}", {"status": status})
        t = self.table
        q = select(t).order_by(order_by(t, sort, order, SORTABLE, "round_number"), t.c.id)
        races = [_race(r) for r in db.execute(q).mappings().all()]
        if status is None:
            return races
        # events live in a JSON column
        return [r for r in races if any(ev.get("status") == status for ev in r["events"])]

    def update(self, db: Session, race_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        self.require(db, race_id)
        if "is_processed" in changes or "ppm_data" in changes:
            raise InvalidEntity("Processing state is managed by settlement only")
        values = {k: v for k, v in changes.items() if k in UPDATABLE and v is not None}
        if not values:
            raise InvalidEntity("No valid fields provided for update")
        if "events" in values:
            values["events"] = normalize_events(values["events"])
        if "submission_deadline" in values:
            values["submission_deadline"] = as_utc(values["submission_deadline"])
        t = self.table
        db.execute(update(t).where(t.c.id == race_id).values(**values))
        return self.require(db, race_id)

    def mark_processed(self, db: Session, race_id: int, ppm_data: Dict[str, Any]) -> bool:
        """Flip ``is_processed`` exactly once; False if someone got there first."""
        t = self.table
        res = db.execute(
            update(t)
            .where(t.c.id == race_id, t.c.is_processed.is_(False))
            .values(is_processed=True, ppm_data=ppm_data)
        )
        return res.rowcount == 1

    def processed(self, db: Session, limit: Optional[int] = None, order: str = "desc") -> List[Dict[str, Any]]:
        t = self.table
        col = t.c.round_number.desc() if order == "desc" else t.c.round_number.asc()
        q = select(t).where(t.c.is_processed.is_(True), t.c.ppm_data.is_not(None)).order_by(col, t.c.id)
        if limit is not None:
            q = q.limit(limit)
        return [_race(r) for r in db.execute(q).mappings().all()]

    def counts(self, db: Session) -> Dict[str, int]:
        t = self.table
        total = db.execute(select(func.count(t.c.id))).scalar_one()
        processed = db.execute(select(func.count(t.c.id)).where(t.c.is_processed.is_(True))).scalar_one()
        return {"count": int(total or 0), "processed": int(processed or 0)}
