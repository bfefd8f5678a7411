"""Baseline schema: roundtrip manifests and CRUD records.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-10-19

Databases created by ``init_database`` are stamped at head without
running this; it exists so older files can be brought forward with
``upgrade_head``.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def upgrade() -> None:
    op.create_table(
        "manifests",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("project_id", sa.Text, nullable=False),
        sa.Column("owner", sa.Text, nullable=False),
        sa.Column("paths", sa.Text, nullable=False),
        sa.Column("baseline", sa.Text, nullable=False),
        sa.Column("state", sa.Text, nullable=False),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("expires_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
    )
    op.create_index("ix_manifests_owner", "manifests", ["owner"])
    op.create_index("ix_manifests_state_expires", "manifests", ["state", "expires_at"])

    op.create_table(
        "records",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("domain", sa.Text, nullable=False),
        sa.Column("owner", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("body", sa.Text, nullable=False, server_default=""),
        sa.Column("tags", sa.Text, nullable=False, server_default="[]"),
        sa.Column("data", sa.Text, nullable=False, server_default="{}"),
        sa.Column("created", sa.Text, nullable=False),
        sa.Column("modified", sa.Text, nullable=False),
    )
    op.create_index("ix_records_domain_owner", "records", ["domain", "owner"])
    op.create_index("ix_records_modified", "records", ["modified"])


def downgrade() -> None:
    op.drop_table("records")
    op.drop_table("manifests")
