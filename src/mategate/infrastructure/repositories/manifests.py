"""Repository for roundtrip manifests.

State changes are compare-and-set updates (``WHERE state IN (...)``) so a
transition only lands if the manifest is still in a state that allows it.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.engine import Engine

from mategate.domain.lifecycle import OPEN_STATES, Manifest, ManifestState, is_valid_transition
from mategate.infrastructure.database.schema import manifests


def _ts(value: datetime) -> str:
    # Fixed-width UTC timestamps compare correctly as text.
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _row_to_manifest(row: Any) -> Manifest:
    return Manifest(
        id=row["id"],
        project_id=row["project_id"],
        owner=row["owner"],
        paths=tuple(json.loads(row["paths"])),
        baseline=json.loads(row["baseline"]),
        state=ManifestState(row["state"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        expires_at=datetime.fromisoformat(row["expires_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class ManifestRepository:
    """Encapsulates SQL for manifest persistence."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def insert(self, manifest: Manifest) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                manifests.insert().values(
                    id=manifest.id,
                    project_id=manifest.project_id,
                    owner=manifest.owner,
                    paths=json.dumps(list(manifest.paths)),
                    baseline=json.dumps(dict(manifest.baseline), sort_keys=True),
                    state=str(manifest.state),
                    created_at=_ts(manifest.created_at),
                    expires_at=_ts(manifest.expires_at),
                    updated_at=_ts(manifest.updated_at),
                )
            )

    def get(self, manifest_id: str) -> Manifest | None:
        stmt = select(manifests).where(manifests.c.id == manifest_id)
        with self._engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return _row_to_manifest(row) if row is not None else None

    def transition(
        self,
        manifest_id: str,
        target: ManifestState,
        *,
        from_states: Iterable[str],
        now: datetime,
    ) -> bool:
        """Move a manifest to *target* if it is currently in one of *from_states*."""
        sources = [str(s) for s in from_states]
        illegal = [s for s in sources if not is_valid_transition(s, target)]
        if illegal:
            raise ValueError(f"Illegal manifest transition: {illegal} -> {target}")
        stmt = (
            update(manifests)
            .where(manifests.c.id == manifest_id, manifests.c.state.in_(sources))
            .values(state=str(target), updated_at=_ts(now))
        )
        with self._engine.begin() as conn:
            return conn.execute(stmt).rowcount == 1

    def find_expired(self, now: datetime) -> list[str]:
        """IDs of open manifests whose TTL has elapsed."""
        stmt = select(manifests.c.id).where(
            manifests.c.state.in_([str(s) for s in OPEN_STATES]),
            manifests.c.expires_at <= _ts(now),
        )
        with self._engine.connect() as conn:
            return [str(manifest_id) for manifest_id in conn.execute(stmt).scalars().all()]
