"""perf: add per-race roster index to existing seasons

Revision ID: 5d2a9c41e7b3
Revises:
Create Date: 2026-10-16 10:12:04.118302

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from fantasy.db.base import parse_season_table


# revision identifiers, used by Alembic.
revision: str = '5d2a9c41e7b3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _roster_tables(inspector):
    for name in inspector.get_table_names():
        parsed = parse_season_table(name)
        if parsed and parsed[0] == "rosters":
            yield name


def upgrade() -> None:
    inspector = sa.inspect(op.get_bind())
    for table in _roster_tables(inspector):
        existing = {ix["name"] for ix in inspector.get_indexes(table)}
        # Speeds roster lookups and breakdowns by race
        if f"ix_{table}_race" not in existing:
            op.create_index(f"ix_{table}_race", table, ["race_id"], unique=False)


def downgrade() -> None:
    inspector = sa.inspect(op.get_bind())
    for table in _roster_tables(inspector):
        existing = {ix["name"] for ix in inspector.get_indexes(table)}
        if f"ix_{table}_race" in existing:
            op.drop_index(f"ix_{table}_race", table_name=table)
