"""Alembic migrations for the mategate database.

Configuration is built in code; there is no alembic.ini. Revision
scripts live in ``versions/`` next to this module. Commands run on a
connection borrowed from the caller's engine, so the WAL and busy-timeout
pragmas from :func:`create_db_engine` apply to migrations too.
"""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Connection, Engine

SCRIPT_LOCATION = Path(__file__).parent


def build_config(db_url: str, connection: Connection | None = None) -> Config:
    """Alembic Config for our scripts; *connection* is handed to env.py."""
    cfg = Config()
    cfg.set_main_option("script_location", str(SCRIPT_LOCATION))
    cfg.set_main_option("sqlalchemy.url", db_url)
    if connection is not None:
        cfg.attributes["connection"] = connection
    return cfg


def head_revision() -> str | None:
    return ScriptDirectory(str(SCRIPT_LOCATION)).get_current_head()


def current_revision(engine: Engine) -> str | None:
    with engine.connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def stamp_head(engine: Engine) -> None:
    """Mark a database whose tables came from metadata as already at head."""
    with engine.begin() as conn:
        command.stamp(build_config(str(engine.url), conn), "head")


def upgrade_head(engine: Engine) -> None:
    with engine.begin() as conn:
        command.upgrade(build_config(str(engine.url), conn), "head")
