"""Database connection and session management using SQLModel."""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from .config import DATA_DIR

DB_PATH = DATA_DIR / "serials.db"
SQLITE_URL = f"sqlite:///{DB_PATH}"


def make_engine(url: str = SQLITE_URL) -> Engine:
    """Create a SQLite engine with foreign keys enforced on every connection."""
    # check_same_thread=False: the scan store runs sessions in worker threads
    new_engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(new_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()

    return new_engine


engine = make_engine()


def init_db() -> None:
    """Create database tables."""
    # Import models to ensure they are registered with SQLModel.metadata
    from . import models  # noqa: F401

    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL;")

    SQLModel.metadata.create_all(engine)


def reset_database() -> None:
    """Delete the database file and recreate it."""
    engine.dispose()
    if DB_PATH.exists():
        DB_PATH.unlink()
    init_db()


def get_engine() -> Engine:
    """Return the global engine instance."""
    return engine
