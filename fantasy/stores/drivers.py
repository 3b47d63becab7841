from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fantasy.core.errors import Conflict, InvalidEntity, UnknownDriver
from fantasy.models.season import CATEGORIES
from fantasy.stores.common import order_by, require_non_negative, row_dict

UPDATABLE = ("name", "current_value", "points", "categories", "image_url", "description")
NON_NEGATIVE = ("current_value", "previous_value", "points")
SORTABLE = ("name", "current_value", "points", "id")


def normalize_categories(categories: Iterable[str]) -> List[str]:
    """Drivers carry one or two distinct tags from the fixed enumeration."""
    cats = list(dict.fromkeys(categories or []))
    unknown = [c for c in cats if c not in CATEGORIES]
    if unknown:
        raise InvalidEntity(
            f"Unknown categories: {', '.join(unknown)}", {"categories": unknown}
        )
    if len(cats) not in (1, 2):
        raise InvalidEntity("Categories must contain 1 or 2 items", {"categories": cats})
    return cats


class DriverStore:
    def __init__(self, table):
        self.table = table

    def find_by_name(self, db: Session, name: str, exclude_id: Optional[int] = None):
        t = self.table
        q = select(t).where(func.lower(t.c.name) == name.strip().lower())
        if exclude_id is not None:
            q = q.where(t.c.id != exclude_id)
        return row_dict(db.execute(q).mappings().first())

    def create(
        self,
        db: Session,
        *,
        name: str,
        categories: Iterable[str],
        current_value: float = 0.0,
        previous_value: Optional[float] = None,
        points: float = 0.0,
        image_url: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise InvalidEntity("Driver name is required")
        if self.find_by_name(db, name):
            raise Conflict("A driver with this name already exists for this season", {"name": name})
        values = {
            "name": name,
            "current_value": float(current_value),
            "previous_value": float(previous_value if previous_value is not None else current_value),
            "points": float(points),
            "categories": normalize_categories(categories),
            "image_url": image_url,
            "description": description,
        }
        require_non_negative(values, NON_NEGATIVE)
        try:
            res = db.execute(insert(self.table).values(**values))
        except IntegrityError as exc:
            raise Conflict(f"Could not store driver {name!r}", {"name": name}) from exc
        return self.require(db, res.inserted_primary_key[0])

    def get(self, db: Session, driver_id: int) -> Optional[Dict[str, Any]]:
        t = self.table
        return row_dict(db.execute(select(t).where(t.c.id == driver_id)).mappings().first())

    def require(self, db: Session, driver_id: int) -> Dict[str, Any]:
        row = self.get(db, driver_id)
        if row is None:
            raise UnknownDriver([driver_id])
        return row

    def get_many(self, db: Session, driver_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
        ids = list(dict.fromkeys(driver_ids))
        if not ids:
            return {}
        t = self.table
        rows = db.execute(select(t).where(t.c.id.in_(ids))).mappings().all()
        return {r["id"]: dict(r) for r in rows}

    def list(self, db: Session, sort: str = "name", order: str = "asc") -> List[Dict[str, Any]]:
        t = self.table
        q = select(t).order_by(order_by(t, sort, order, SORTABLE, "name"), t.c.id)
        return [dict(r) for r in db.execute(q).mappings().all()]

    def update(self, db: Session, driver_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        self.require(db, driver_id)
        values = {k: v for k, v in changes.items() if k in UPDATABLE and v is not None}
        if not values:
            raise InvalidEntity("No valid fields provided for update")
        require_non_negative(values, NON_NEGATIVE)
        if "name" in values:
            values["name"] = values["name"].strip()
            if self.find_by_name(db, values["name"], exclude_id=driver_id):
                raise Conflict(
                    "A driver with this name already exists for this season",
                    {"name": values["name"]},
                )
        if "categories" in values:
            values["categories"] = normalize_categories(values["categories"])
        t = self.table
        try:
            db.execute(update(t).where(t.c.id == driver_id).values(**values))
        except IntegrityError as exc:
            raise Conflict(f"Could not update driver {driver_id}") from exc
        return self.require(db, driver_id)

    def delete(self, db: Session, driver_id: int) -> Dict[str, Any]:
        row = self.require(db, driver_id)
        t = self.table
        db.execute(delete(t).where(t.c.id == driver_id))
        return row

    def apply_valuation(
        self, db: Session, driver_id: int, *, new_value: float, previous_value: float, points_gained: float
    ) -> None:
        t = self.table
        res = db.execute(
            update(t)
            .where(t.c.id == driver_id)
            .values(
                current_value=new_value,
                previous_value=previous_value,
                points=t.c.points + points_gained,
            )
        )
        if res.rowcount != 1:
            raise UnknownDriver([driver_id])

    def totals(self, db: Session) -> Dict[str, Any]:
        t = self.table
        row = db.execute(
            select(
                func.count(t.c.id).label("count"),
                func.coalesce(func.sum(t.c.current_value), 0).label("total_value"),
                func.coalesce(func.sum(t.c.points), 0).label("total_points"),
            )
        ).mappings().one()
        return {
            "count": int(row["count"] or 0),
            "total_value": float(row["total_value"] or 0),
            "total_points": float(row["total_points"] or 0),
        }

    def category_breakdown(self, db: Session) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for d in self.list(db):
            for cat in d["categories"] or []:
                agg = out.setdefault(cat, {"count": 0, "total_value": 0.0, "total_points": 0.0})
                agg["count"] += 1
                agg["total_value"] += d["current_value"]
                agg["total_points"] += d["points"]
        return dict(sorted(out.items()))
