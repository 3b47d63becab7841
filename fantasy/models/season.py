from dataclasses import dataclass

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    func,
)

from fantasy.db.base import season_table_name

CATEGORIES = ("M", "JS", "I")
ROLES = ("admin", "user")


@dataclass(frozen=True)
class SeasonTables:
    year: int
    metadata: MetaData
    drivers: Table
    managers: Table
    races: Table
    rosters: Table

    def all(self):
        return (self.drivers, self.managers, self.races, self.rosters)


def build_season_tables(year: int, metadata: MetaData | None = None) -> SeasonTables:
    """Define the four tables of one season.

    Constraint and index names embed the year so several seasons can share
    one schema (PostgreSQL index names are schema-wide).
    """
    year = int(year)
    metadata = metadata if metadata is not None else MetaData()
    drivers_name = season_table_name("drivers", year)
    managers_name = season_table_name("managers", year)
    races_name = season_table_name("races", year)
    rosters_name = season_table_name("rosters", year)

    drivers = Table(
        drivers_name,
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String, nullable=False),
        Column("current_value", Float, nullable=False, default=0.0),
        Column("previous_value", Float, nullable=False, default=0.0),
        Column("points", Float, nullable=False, default=0.0),
        Column("categories", JSON, nullable=False),
        Column("image_url", String, nullable=True),
        Column("description", String, nullable=True),
        CheckConstraint("current_value >= 0", name=f"ck_{drivers_name}_current_value"),
        CheckConstraint("previous_value >= 0", name=f"ck_{drivers_name}_previous_value"),
        CheckConstraint("points >= 0", name=f"ck_{drivers_name}_points"),
    )
    # case-insensitive uniqueness
    Index(f"ux_{drivers_name}_name", func.lower(drivers.c.name), unique=True)

    managers = Table(
        managers_name,
        metadata,
        Column("id", Integer, primary_key=True),
        Column("username", String, nullable=False),
        Column("credential_hash", String, nullable=False),
        Column("role", String, nullable=False, default="user"),
        Column("budget", Float, nullable=False, default=0.0),
        Column("points", Float, nullable=False, default=0.0),
        CheckConstraint("role IN ('admin', 'user')", name=f"ck_{managers_name}_role"),
        CheckConstraint("budget >= 0", name=f"ck_{managers_name}_budget"),
        CheckConstraint("points >= 0", name=f"ck_{managers_name}_points"),
    )
    Index(f"ux_{managers_name}_username", func.lower(managers.c.username), unique=True)

    races = Table(
        races_name,
        metadata,
        Column("id", Integer, primary_key=True),
        Column("round_number", Integer, nullable=False),
        Column("name", String, nullable=False),
        Column("location", String, nullable=True),
        Column("events", JSON, nullable=False, default=list),
        Column("submission_deadline", DateTime(timezone=True), nullable=False),
        Column("is_locked", Boolean, nullable=False, default=False),
        Column("is_processed", Boolean, nullable=False, default=False),
        Column("ppm_data", JSON(none_as_null=True), nullable=True),
        Index(f"ix_{races_name}_processed_round", "is_processed", "round_number"),
    )

    rosters = Table(
        rosters_name,
        metadata,
        Column("id", Integer, primary_key=True),
        Column("manager_id", Integer, ForeignKey(f"{managers_name}.id"), nullable=False),
        Column("race_id", Integer, ForeignKey(f"{races_name}.id"), nullable=False),
        Column("driver_ids", JSON, nullable=False),
        Column("budget_used", Float, nullable=False, default=0.0),
        Column("points_earned", Float, nullable=False, default=0.0),
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=True),
        UniqueConstraint("manager_id", "race_id", name=f"uq_{rosters_name}_manager_race"),
        CheckConstraint("budget_used >= 0", name=f"ck_{rosters_name}_budget_used"),
        Index(f"ix_{rosters_name}_race", "race_id"),
    )

    return SeasonTables(
        year=year,
        metadata=metadata,
        drivers=drivers,
        managers=managers,
        races=races,
        rosters=rosters,
    )
