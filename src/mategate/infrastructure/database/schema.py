"""SQLAlchemy Core table definitions for the mategate database.

Two tables: ``manifests`` holds roundtrip manifests (the only state the
file transaction protocol persists) and ``records`` backs the thin CRUD
facades. List-valued and mapping-valued columns are stored as JSON text.
"""

from __future__ import annotations

from sqlalchemy import Column, Index, MetaData, Table, Text

metadata = MetaData()

manifests = Table(
    "manifests",
    metadata,
    Column("id", Text, primary_key=True),
    Column("project_id", Text, nullable=False),
    Column("owner", Text, nullable=False),
    Column("paths", Text, nullable=False),  # JSON array, request order
    Column("baseline", Text, nullable=False),  # JSON object path -> sha256 hex
    Column("state", Text, nullable=False),
    Column("created_at", Text, nullable=False),
    Column("expires_at", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
)

records = Table(
    "records",
    metadata,
    Column("id", Text, primary_key=True),
    Column("domain", Text, nullable=False),
    Column("owner", Text, nullable=False),
    Column("title", Text, nullable=False),
    Column("body", Text, nullable=False, default="", server_default=""),
    Column("tags", Text, nullable=False, default="[]", server_default="[]"),  # JSON array
    Column("data", Text, nullable=False, default="{}", server_default="{}"),  # JSON object
    Column("created", Text, nullable=False),
    Column("modified", Text, nullable=False),
)

# Indexes for frequently filtered columns
Index("ix_manifests_owner", manifests.c.owner)
Index("ix_manifests_state_expires", manifests.c.state, manifests.c.expires_at)
Index("ix_records_domain_owner", records.c.domain, records.c.owner)
Index("ix_records_modified", records.c.modified)
