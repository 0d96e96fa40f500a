"""Schema migrations for serials.db.

The CLI goes through these helpers instead of calling Alembic itself.
Databases created by ``init_db`` have the tables but no ``alembic_version``;
they are stamped at head before anything is upgraded.
"""

from __future__ import annotations

import pathlib
import shutil
from typing import Optional

from alembic import command as alembic_command
from alembic.config import Config as AlembicConfig
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect

from . import database
from .config import PROJECT_ROOT
from .logging_config import get_logger

logger = get_logger(__name__)


def alembic_config() -> AlembicConfig:
    cfg = AlembicConfig(str(PROJECT_ROOT / "alembic.ini"))
    # Absolute so `serials migrate` works from any directory
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    return cfg


def head_revision() -> str:
    return ScriptDirectory.from_config(alembic_config()).get_current_head() or "unknown"


def current_revision() -> Optional[str]:
    """Revision recorded in the database, or None if it was never stamped."""
    if not database.DB_PATH.exists():
        return None
    with database.get_engine().connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def get_status() -> tuple[Optional[str], str]:
    """Return (current_revision, head_revision)."""
    return current_revision(), head_revision()


def backup_database() -> Optional[pathlib.Path]:
    """Copy serials.db to serials.db.bak, replacing any previous backup."""
    path = database.DB_PATH
    if not path.exists():
        return None
    backup = path.with_suffix(".db.bak")
    shutil.copy2(path, backup)
    logger.info(f"Backed up database to {backup.name}")
    return backup


def run_migrations(backup: bool = True) -> None:
    if backup:
        backup_database()
    alembic_command.upgrade(alembic_config(), "head")


def stamp_if_needed() -> bool:
    """Stamp an unversioned database that already has the schema.

    Returns True when a stamp was written.
    """
    if not database.DB_PATH.exists() or current_revision() is not None:
        return False
    with database.get_engine().connect() as conn:
        if not inspect(conn).has_table("sources"):
            return False
    alembic_command.stamp(alembic_config(), "head")
    logger.info("Stamped existing database at head")
    return True


def upgrade_to_head(backup: bool = True) -> bool:
    """Bring the database to head. Returns False when it already was."""
    stamp_if_needed()
    current, head = get_status()
    if current == head:
        return False
    logger.info(f"Migrating database {current} -> {head} ...")
    run_migrations(backup=backup)
    logger.info("Migration complete.")
    return True
