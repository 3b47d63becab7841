from typing import Any, Dict, List, Optional

from sqlalchemy import case, delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fantasy.core.errors import Conflict, InvalidEntity, UnknownManager
from fantasy.models.season import ROLES
from fantasy.stores.common import EPSILON, order_by, require_non_negative, row_dict

UPDATABLE = ("username", "role", "points", "credential_hash")
SORTABLE = ("username", "budget", "points", "id")


class ManagerStore:
    """Managers of one season.

    ``credential_hash`` is write-only: no read path here selects it. The
    ``budget`` column only moves through :meth:`adjust_budget`, which the
    budget ledger owns.
    """

    def __init__(self, table):
        self.table = table
        self._public = [c for c in table.c if c.name != "credential_hash"]

    def find_by_username(self, db: Session, username: str, exclude_id: Optional[int] = None):
        t = self.table
        q = select(*self._public).where(func.lower(t.c.username) == username.strip().lower())
        if exclude_id is not None:
            q = q.where(t.c.id != exclude_id)
        return row_dict(db.execute(q).mappings().first())

    def create(
        self,
        db: Session,
        *,
        username: str,
        credential_hash: str,
        role: str = "user",
        budget: float = 0.0,
        points: float = 0.0,
    ) -> Dict[str, Any]:
        username = (username or "").strip()
        if not username:
            raise InvalidEntity("Username is required")
        if role not in ROLES:
            raise InvalidEntity(f"Role must be one of {', '.join(ROLES)}", {"role": role})
        require_non_negative({"budget": budget, "points": points}, ("budget", "points"))
        if self.find_by_username(db, username):
            raise Conflict(f"username '{username}' already exists. Please use another one.")
        try:
            res = db.execute(
                insert(self.table).values(
                    username=username,
                    credential_hash=credential_hash,
                    role=role,
                    budget=float(budget),
                    points=float(points),
                )
            )
        except IntegrityError as exc:
            raise Conflict(f"Could not store manager {username!r}") from exc
        return self.require(db, res.inserted_primary_key[0])

    def get(self, db: Session, manager_id: int) -> Optional[Dict[str, Any]]:
        t = self.table
        return row_dict(db.execute(select(*self._public).where(t.c.id == manager_id)).mappings().first())

    def require(self, db: Session, manager_id: int) -> Dict[str, Any]:
        row = self.get(db, manager_id)
        if row is None:
            raise UnknownManager(manager_id)
        return row

    def list(self, db: Session, sort: str = "username", order: str = "asc") -> List[Dict[str, Any]]:
        t = self.table
        q = select(*self._public).order_by(order_by(t, sort, order, SORTABLE, "username"), t.c.id)
        return [dict(r) for r in db.execute(q).mappings().all()]

    def credential_rows(self, db: Session) -> List[Dict[str, Any]]:
        """Full rows including credentials; only used to carry managers into another season."""
        t = self.table
        return [dict(r) for r in db.execute(select(t).order_by(t.c.id)).mappings().all()]

    def update(self, db: Session, manager_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        self.require(db, manager_id)
        values = {k: v for k, v in changes.items() if k in UPDATABLE and v is not None}
        if not values:
            raise InvalidEntity("No valid fields provided for update")
        if "role" in values and values["role"] not in ROLES:
            raise InvalidEntity(f"Role must be one of {', '.join(ROLES)}", {"role": values["role"]})
        require_non_negative(values, ("points",))
        if "username" in values:
            values["username"] = values["username"].strip()
            if self.find_by_username(db, values["username"], exclude_id=manager_id):
                raise Conflict(f"username '{values['username']}' already exists. Please use another one.")
        t = self.table
        try:
            db.execute(update(t).where(t.c.id == manager_id).values(**values))
        except IntegrityError as exc:
            raise Conflict(f"Could not update manager {manager_id}") from exc
        return self.require(db, manager_id)

    def delete(self, db: Session, manager_id: int) -> Dict[str, Any]:
        row = self.require(db, manager_id)
        t = self.table
        db.execute(delete(t).where(t.c.id == manager_id))
        return row

    def adjust_budget(self, db: Session, manager_id: int, delta: float) -> Optional[float]:
        """Apply a signed budget change in one UPDATE.

        Debits only match while the budget covers them, so two concurrent
        debits can never drive the budget negative. Returns the new budget,
        or ``None`` if no row matched (unknown manager or insufficient funds).
        """
        t = self.table
        new_budget = t.c.budget + delta
        stmt = update(t).where(t.c.id == manager_id)
        if delta < 0:
            stmt = stmt.where(new_budget >= -EPSILON)
        stmt = stmt.values(budget=case((new_budget < 0, 0.0), else_=new_budget))
        res = db.execute(stmt)
        if res.rowcount != 1:
            return None
        return float(db.execute(select(t.c.budget).where(t.c.id == manager_id)).scalar_one())

    def totals(self, db: Session) -> Dict[str, Any]:
        t = self.table
        row = db.execute(
            select(
                func.count(t.c.id).label("count"),
                func.coalesce(func.sum(t.c.budget), 0).label("total_budget"),
            )
        ).mappings().one()
        return {"count": int(row["count"] or 0), "total_budget": float(row["total_budget"] or 0)}
