"""Database engine setup for SQLite with WAL mode.

SQLite is the persistence layer: WAL mode so readers never block the
writer, a busy timeout so concurrent request threads queue instead of
failing. The DB is stored at ``{data_root}/.mategate/mategate.db`` unless
``[storage] db_path`` says otherwise.

SQLAlchemy Core (not ORM) is used because the gateway only needs a
couple of flat tables and explicit transaction boundaries. Schema
versions are tracked by Alembic (see :mod:`.migrations`).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from mategate.infrastructure.database import migrations
from mategate.infrastructure.database.schema import metadata

logger = logging.getLogger(__name__)


def create_db_engine(db_path: Path) -> Engine:
    """Create a SQLite engine with WAL mode and a busy timeout."""
    engine = create_engine(f"sqlite:///{db_path}", echo=False)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    return engine


def init_database(db_path: Path) -> Engine:
    """Initialize the database file at *db_path*.

    A database with no Alembic version gets every table from
    :data:`schema.metadata` and is stamped at head. A versioned database
    behind head is upgraded. Idempotent: safe to call on an existing
    database.

    Returns the engine ready for use.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_db_engine(db_path)

    current = migrations.current_revision(engine)
    if current is None:
        metadata.create_all(engine)
        migrations.stamp_head(engine)
    elif current != migrations.head_revision():
        logger.info("Upgrading database %s from revision %s", db_path, current)
        migrations.upgrade_head(engine)
    return engine
