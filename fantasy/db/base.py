import re
from typing import Optional, Tuple

# One table per collection per season, e.g. drivers_2025
COLLECTIONS = ("drivers", "managers", "races", "rosters")
SEASON_TABLE_RE = re.compile(r"^(drivers|managers|races|rosters)_(\d{4})$")


def season_table_name(collection: str, year: int) -> str:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection!r}")
    return f"{collection}_{int(year)}"


def parse_season_table(name: str) -> Optional[Tuple[str, int]]:
    """Return (collection, year) for a season table name, else None."""
    m = SEASON_TABLE_RE.match(name)
    if not m:
        return None
    return m.group(1), int(m.group(2))
