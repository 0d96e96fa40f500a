"""Alembic environment for serials.db.

Runs on the application's own engine, so tests that swap
``serials.database.engine`` migrate their temporary database.
"""

from __future__ import annotations

from alembic import context
from sqlmodel import SQLModel

from serials import database
from serials import models  # noqa: F401  (registers the tables)


def _run(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=SQLModel.metadata,
        render_as_batch=True,  # SQLite cannot ALTER most constraints
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    raise RuntimeError("serials migrations run online only; --sql is not supported")

with database.get_engine().connect() as connection:
    _run(connection)
