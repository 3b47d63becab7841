import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import MetaData, engine_from_config, inspect, pool

from fantasy.core.config import settings
from fantasy.db.base import parse_season_table
from fantasy.models.season import build_season_tables

config = context.config

# Prefer DATABASE_URL env var, then alembic.ini, then app settings
db_url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url") or settings.database_url
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name:
    fileConfig(config.config_file_name)


def season_metadata(connection) -> MetaData:
    """Tables are created per season, so the target is whatever seasons exist."""
    metadata = MetaData()
    years = set()
    for name in inspect(connection).get_table_names():
        parsed = parse_season_table(name)
        if parsed:
            years.add(parsed[1])
    for year in sorted(years):
        build_season_tables(year, metadata)
    return metadata


def run_migrations_offline():
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=MetaData(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=season_metadata(connection),
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
