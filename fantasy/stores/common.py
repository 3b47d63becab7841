from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fantasy.core.errors import InvalidEntity

# slack for float comparisons on money
EPSILON = 1e-9


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def row_dict(row) -> Optional[Dict[str, Any]]:
    return dict(row) if row is not None else None


def order_by(table, sort: str, order: str, allowed, default: str):
    col = table.c[sort] if sort in allowed else table.c[default]
    return col.desc() if order == "desc" else col.asc()


def require_non_negative(values: Dict[str, Any], fields) -> None:
    """Money and points columns carry CHECK (>= 0); reject before the insert."""
    bad = {f: values[f] for f in fields if values.get(f) is not None and values[f] < 0}
    if bad:
        raise InvalidEntity(f"{', '.join(bad)} cannot be negative", bad)
