from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fantasy.core.errors import DuplicateRoster, InvalidEntity, UnknownRoster
from fantasy.stores.common import as_utc, order_by, utcnow

UPDATABLE = ("driver_ids", "budget_used", "points_earned")
SORTABLE = ("created_at", "budget_used", "points_earned", "updated_at", "id")


def _roster(row) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    roster = dict(row)
    roster["driver_ids"] = list(roster.get("driver_ids") or [])
    roster["created_at"] = as_utc(roster["created_at"])
    roster["updated_at"] = as_utc(roster.get("updated_at"))
    return roster


class RosterStore:
    def __init__(self, table):
        self.table = table

    def create(
        self,
        db: Session,
        *,
        manager_id: int,
        race_id: int,
        driver_ids: Iterable[int],
        budget_used: float,
        points_earned: float = 0.0,
        created_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        try:
            res = db.execute(
                insert(self.table).values(
                    manager_id=manager_id,
                    race_id=race_id,
                    driver_ids=[int(d) for d in driver_ids],
                    budget_used=float(budget_used),
                    points_earned=float(points_earned),
                    created_at=as_utc(created_at) or utcnow(),
                    updated_at=None,
                )
            )
        except IntegrityError as exc:
            # (manager_id, race_id) is unique; a concurrent create lost the race
            raise DuplicateRoster(manager_id, race_id) from exc
        return self.require(db, res.inserted_primary_key[0])

    def get(self, db: Session, roster_id: int, for_update: bool = False) -> Optional[Dict[str, Any]]:
        t = self.table
        q = select(t).where(t.c.id == roster_id)
        if for_update:
            q = q.with_for_update()
        return _roster(db.execute(q).mappings().first())

    def require(self, db: Session, roster_id: int, for_update: bool = False) -> Dict[str, Any]:
        roster = self.get(db, roster_id, for_update=for_update)
        if roster is None:
            raise UnknownRoster(roster_id)
        return roster

    def find(self, db: Session, manager_id: int, race_id: int) -> Optional[Dict[str, Any]]:
        t = self.table
        q = select(t).where(t.c.manager_id == manager_id, t.c.race_id == race_id)
        return _roster(db.execute(q).mappings().first())

    def list(
        self,
        db: Session,
        manager_id: Optional[int] = None,
        race_id: Optional[int] = None,
        sort: str = "created_at",
        order: str = "desc",
    ) -> List[Dict[str, Any]]:
        t = self.table
        q = select(t)
        if manager_id is not None:
            q = q.where(t.c.manager_id == manager_id)
        if race_id is not None:
            q = q.where(t.c.race_id == race_id)
        q = q.order_by(order_by(t, sort, order, SORTABLE, "created_at"), t.c.id)
        return [_roster(r) for r in db.execute(q).mappings().all()]

    def update(
        self, db: Session, roster_id: int, changes: Dict[str, Any], updated_at: Optional[datetime] = None
    ) -> Dict[str, Any]:
        values = {k: v for k, v in changes.items() if k in UPDATABLE and v is not None}
        if not values:
            raise InvalidEntity("No valid fields provided for update")
        if "driver_ids" in values:
            values["driver_ids"] = [int(d) for d in values["driver_ids"]]
        values["updated_at"] = as_utc(updated_at) or utcnow()
        t = self.table
        res = db.execute(update(t).where(t.c.id == roster_id).values(**values))
        if res.rowcount != 1:
            raise UnknownRoster(roster_id)
        return self.require(db, roster_id)

    def delete(self, db: Session, roster_id: int) -> Dict[str, Any]:
        roster = self.require(db, roster_id)
        t = self.table
        res = db.execute(delete(t).where(t.c.id == roster_id))
        if res.rowcount != 1:
            raise UnknownRoster(roster_id)
        return roster

    def references_driver(self, db: Session, driver_id: int) -> bool:
        t = self.table
        # JSON containment differs per backend; season-sized scan is fine
        for ids in db.execute(select(t.c.driver_ids)).scalars():
            if driver_id in (ids or []):
                return True
        return False

    def for_manager(self, db: Session, manager_id: int) -> List[Dict[str, Any]]:
        return self.list(db, manager_id=manager_id)

    def count_for_manager(self, db: Session, manager_id: int) -> int:
        t = self.table
        return int(db.execute(select(func.count(t.c.id)).where(t.c.manager_id == manager_id)).scalar_one())

    def committed_budget(self, db: Session) -> Dict[int, float]:
        """Sum of ``budget_used`` per manager."""
        t = self.table
        rows = db.execute(
            select(t.c.manager_id, func.sum(t.c.budget_used)).group_by(t.c.manager_id)
        ).all()
        return {int(mid): float(total or 0) for mid, total in rows}

    def totals(self, db: Session) -> Dict[str, Any]:
        t = self.table
        row = db.execute(
            select(
                func.count(t.c.id).label("count"),
                func.coalesce(func.sum(t.c.budget_used), 0).label("total_budget_used"),
            )
        ).mappings().one()
        return {"count": int(row["count"] or 0), "total_budget_used": float(row["total_budget_used"] or 0)}
