"""Repository for owner-scoped records behind the thin CRUD facades."""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.engine import Engine

from mategate.infrastructure.database.schema import records

_JSON_COLUMNS = ("tags", "data")


def _encode(values: dict[str, Any]) -> dict[str, Any]:
    encoded = dict(values)
    for column in _JSON_COLUMNS:
        if column in encoded:
            encoded[column] = json.dumps(encoded[column], sort_keys=True)
    return encoded


def _decode(row: Any) -> dict[str, Any]:
    item = dict(row)
    for column in _JSON_COLUMNS:
        raw = item.get(column)
        if raw:
            item[column] = json.loads(raw)
        else:
            item[column] = [] if column == "tags" else {}
    return item


class RecordRepository:
    """Encapsulates SQL for record CRUD, search and hydration reads.

    Every query is scoped by ``(domain, owner)``; no method returns
    another identity's rows.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def insert(self, values: dict[str, Any]) -> None:
        with self._engine.begin() as conn:
            conn.execute(records.insert().values(**_encode(values)))

    def get(self, domain: str, owner: str, record_id: str) -> dict[str, Any] | None:
        stmt = select(records).where(
            records.c.id == record_id,
            records.c.domain == domain,
            records.c.owner == owner,
        )
        with self._engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return _decode(row) if row is not None else None

    def list_rows(
        self,
        domain: str,
        owner: str,
        *,
        tag: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Newest-first page of a domain's records."""
        stmt = select(records).where(records.c.domain == domain, records.c.owner == owner)
        if tag:
            stmt = stmt.where(records.c.tags.contains(json.dumps(tag), autoescape=True))
        stmt = stmt.order_by(records.c.modified.desc(), records.c.id).limit(limit).offset(offset)
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_decode(row) for row in rows]

    def update(self, domain: str, owner: str, record_id: str, values: dict[str, Any]) -> bool:
        stmt = (
            update(records)
            .where(
                records.c.id == record_id,
                records.c.domain == domain,
                records.c.owner == owner,
            )
            .values(**_encode(values))
        )
        with self._engine.begin() as conn:
            return conn.execute(stmt).rowcount == 1

    def delete(self, domain: str, owner: str, record_id: str) -> bool:
        stmt = delete(records).where(
            records.c.id == record_id,
            records.c.domain == domain,
            records.c.owner == owner,
        )
        with self._engine.begin() as conn:
            return conn.execute(stmt).rowcount == 1

    def search(
        self,
        owner: str,
        text: str,
        *,
        domains: list[str],
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Case-insensitive substring match over title, body and tags."""
        needle = text.lower()
        stmt = (
            select(records)
            .where(
                records.c.owner == owner,
                records.c.domain.in_(domains),
                or_(
                    func.lower(records.c.title).contains(needle, autoescape=True),
                    func.lower(records.c.body).contains(needle, autoescape=True),
                    func.lower(records.c.tags).contains(needle, autoescape=True),
                ),
            )
            .order_by(records.c.modified.desc(), records.c.id)
            .limit(limit)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_decode(row) for row in rows]
