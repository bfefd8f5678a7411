"""SQLite database engine and schema via SQLAlchemy Core."""

from mategate.infrastructure.database.engine import create_db_engine, init_database
from mategate.infrastructure.database.schema import manifests, metadata, records

__all__ = [
    "create_db_engine",
    "init_database",
    "manifests",
    "metadata",
    "records",
]
