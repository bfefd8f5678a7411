"""Alembic environment for mategate migrations.

Normally run through :mod:`mategate.infrastructure.database.migrations`,
which passes a live connection in ``config.attributes``. The alembic CLI
path (no connection) builds a throwaway engine from ``sqlalchemy.url``.
"""

from __future__ import annotations

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection

from mategate.infrastructure.database.schema import metadata


def _migrate(connection: Connection) -> None:
    # Batch mode lets later revisions ALTER tables on SQLite.
    context.configure(connection=connection, target_metadata=metadata, render_as_batch=True)
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    context.configure(
        url=context.config.get_main_option("sqlalchemy.url"),
        target_metadata=metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    connection = context.config.attributes.get("connection")
    if connection is not None:
        _migrate(connection)
        return
    url = context.config.get_main_option("sqlalchemy.url")
    if url is None:
        raise RuntimeError("sqlalchemy.url must be set in the Alembic config")
    engine = create_engine(url, poolclass=pool.NullPool)
    with engine.connect() as conn:
        _migrate(conn)
        conn.commit()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
