"""Thin record facades: memories, knowledge, conversations, projects, search, hydration.

Each record domain is an owner-scoped CRUD table; search and hydration
read across the record domains the caller can see.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from mategate.domain.commands import (
    HYDRATION_COMMANDS,
    RECORD_COMMANDS,
    RECORD_DOMAINS,
    SEARCH_COMMANDS,
    HydrationLoadParams,
    RecordCreateParams,
    RecordIdParams,
    RecordListParams,
    RecordUpdateParams,
    SearchQueryParams,
)
from mategate.domain.envelope import DetailLevel
from mategate.domain.errors import ErrorCode
from mategate.domain.ids import generate_record_id, validate_id
from mategate.services._helpers import now_iso
from mategate.services.base import CallContext, DomainHandler
from mategate.services.result import ServiceResult, failure, success
from mategate.services.telemetry import traced

if TYPE_CHECKING:
    from collections.abc import Callable

    from mategate.infrastructure.repositories.records import RecordRepository

log = structlog.get_logger(__name__)


def shape_record(row: dict[str, Any], detail: DetailLevel) -> dict[str, Any]:
    """Project a record row onto the fields *detail* asks for."""
    item: dict[str, Any] = {"id": row["id"], "title": row["title"]}
    if detail is DetailLevel.MINIMAL:
        return item
    item.update(
        domain=row["domain"],
        tags=row["tags"],
        modified=row["modified"],
    )
    if detail is DetailLevel.FULL:
        item.update(body=row["body"], data=row["data"], created=row["created"])
    return item


class RecordsHandler(DomainHandler):
    """CRUD handler for one record domain."""

    commands = RECORD_COMMANDS

    def __init__(
        self,
        domain: str,
        repository: RecordRepository,
        *,
        clock: Callable[[], str] = now_iso,
    ) -> None:
        super().__init__()
        if domain not in RECORD_DOMAINS:
            raise ValueError(f"Not a record domain: {domain}")
        self.domain = domain
        self._repo = repository
        self._clock = clock

    def _not_found(self, op: str, record_id: str) -> ServiceResult:
        return failure(op, ErrorCode.NOT_FOUND, f"No {self.domain} record: {record_id}")

    def _fetch(self, record_id: str, owner: str) -> dict[str, Any] | None:
        if not validate_id(record_id, self.domain):
            return None
        return self._repo.get(self.domain, owner, record_id)

    @traced
    def handle_create(self, params: RecordCreateParams, ctx: CallContext) -> ServiceResult:
        stamp = self._clock()
        values = {
            "id": generate_record_id(self.domain),
            "domain": self.domain,
            "owner": ctx.identity,
            "title": params.title,
            "body": params.body,
            "tags": params.tags,
            "data": params.data,
            "created": stamp,
            "modified": stamp,
        }
        self._repo.insert(values)
        log.debug("record.created", domain=self.domain, record_id=values["id"])
        return success("create", shape_record(values, ctx.detail))

    def handle_get(self, params: RecordIdParams, ctx: CallContext) -> ServiceResult:
        row = self._fetch(params.id, ctx.identity)
        if row is None:
            return self._not_found("get", params.id)
        # get always returns the body; the list view is the trimmed one.
        detail = DetailLevel.FULL if ctx.detail is DetailLevel.STANDARD else ctx.detail
        return success("get", shape_record(row, detail))

    def handle_list(self, params: RecordListParams, ctx: CallContext) -> ServiceResult:
        rows = self._repo.list_rows(
            self.domain,
            ctx.identity,
            tag=params.tag.strip().lower() if params.tag else None,
            limit=params.limit,
            offset=params.offset,
        )
        return success("list", [shape_record(row, ctx.detail) for row in rows])

    @traced
    def handle_update(self, params: RecordUpdateParams, ctx: CallContext) -> ServiceResult:
        changes = params.changes()
        if not changes:
            return failure(
                "update", ErrorCode.INVALID_INPUT, "No fields to update", detail={"fields": []}
            )
        if any(value is None for value in changes.values()):
            nulls = sorted(k for k, v in changes.items() if v is None)
            return failure(
                "update",
                ErrorCode.INVALID_INPUT,
                f"Fields cannot be null: {', '.join(nulls)}",
                detail={"fields": nulls},
            )
        if self._fetch(params.id, ctx.identity) is None:
            return self._not_found("update", params.id)
        changes["modified"] = self._clock()
        self._repo.update(self.domain, ctx.identity, params.id, changes)
        row = self._repo.get(self.domain, ctx.identity, params.id)
        if row is None:
            return self._not_found("update", params.id)
        return success("update", shape_record(row, ctx.detail))

    def handle_delete(self, params: RecordIdParams, ctx: CallContext) -> ServiceResult:
        if not validate_id(params.id, self.domain) or not self._repo.delete(
            self.domain, ctx.identity, params.id
        ):
            return self._not_found("delete", params.id)
        log.debug("record.deleted", domain=self.domain, record_id=params.id)
        return success("delete", {"id": params.id, "deleted": True})


def _resolve_domains(requested: list[str] | None) -> list[str] | None:
    """Validate a ``domains`` filter; None means every record domain."""
    if requested is None:
        return list(RECORD_DOMAINS)
    unknown = [d for d in requested if d not in RECORD_DOMAINS]
    if unknown:
        return None
    return list(dict.fromkeys(requested))


class SearchHandler(DomainHandler):
    """Substring search across the caller's records."""

    domain = "search"
    commands = SEARCH_COMMANDS

    def __init__(self, repository: RecordRepository, enabled: Callable[[str], bool]) -> None:
        super().__init__()
        self._repo = repository
        self._enabled = enabled

    @traced
    def handle_query(self, params: SearchQueryParams, ctx: CallContext) -> ServiceResult:
        domains = _resolve_domains(params.domains)
        if domains is None:
            return failure(
                "query",
                ErrorCode.INVALID_INPUT,
                f"Unknown domains; expected any of {', '.join(RECORD_DOMAINS)}",
                detail={"fields": ["domains"]},
            )
        domains = [d for d in domains if self._enabled(d)]
        rows = self._repo.search(ctx.identity, params.text, domains=domains, limit=params.limit)
        return success("query", [shape_record(row, ctx.detail) for row in rows])


class HydrationHandler(DomainHandler):
    """Recent records per domain: the bundle a client hydrates its context from."""

    domain = "hydration"
    commands = HYDRATION_COMMANDS

    def __init__(self, repository: RecordRepository, enabled: Callable[[str], bool]) -> None:
        super().__init__()
        self._repo = repository
        self._enabled = enabled

    @traced
    def handle_load(self, params: HydrationLoadParams, ctx: CallContext) -> ServiceResult:
        domains = _resolve_domains(params.domains)
        if domains is None:
            return failure(
                "load",
                ErrorCode.INVALID_INPUT,
                f"Unknown domains; expected any of {', '.join(RECORD_DOMAINS)}",
                detail={"fields": ["domains"]},
            )
        bundle = {
            domain: [
                shape_record(row, ctx.detail)
                for row in self._repo.list_rows(domain, ctx.identity, limit=params.limit)
            ]
            for domain in domains
            if self._enabled(domain)
        }
        return success("load", bundle)
