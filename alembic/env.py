"""Alembic environment for the audit store."""

from __future__ import annotations

from logging.config import fileConfig

from sqlalchemy.engine import URL, make_url

from alembic import context

from src.config import get_config
from src.db.session import get_engine
from src.models import Base


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

app_config = get_config()
config.set_main_option("sqlalchemy.url", app_config.database_url)

target_metadata = Base.metadata


def _is_sqlite(database_url: str | URL) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting to the database."""

    database_url = app_config.database_url
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=_is_sqlite(database_url),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply the migrations through the application's engine."""

    with get_engine().connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=_is_sqlite(str(connection.engine.url)),
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
