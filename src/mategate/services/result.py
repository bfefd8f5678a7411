"""ServiceResult and ServiceError: the domain handler contract.

INVARIANT: Every domain handler command returns a ServiceResult.
Handlers never build the outer response envelope; the dispatcher maps a
ServiceResult onto :class:`~mategate.domain.envelope.ResponseEnvelope`.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult.

    ``code`` is one of :class:`~mategate.domain.errors.ErrorCode`. ``detail``
    may carry structured context; only whitelisted keys reach the caller.
    """

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Return type for all domain handler commands.

    Attributes:
        ok: Whether the command succeeded.
        op: Name of the command (e.g. ``"roundtrip_commit"``).
        data: Command-specific payload on success (mapping or list).
        warnings: Non-fatal issues encountered during the command.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timing spans, provider name, etc.).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: Any = None
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None


def success(op: str, data: Any = None, *, warnings: list[str] | None = None) -> ServiceResult:
    """Build a successful ServiceResult."""
    return ServiceResult(ok=True, op=op, data=data, warnings=warnings or [])


def failure(
    op: str,
    code: str,
    message: str,
    *,
    detail: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> ServiceResult:
    """Build a failed ServiceResult carrying a typed error."""
    return ServiceResult(
        ok=False,
        op=op,
        error=ServiceError(code=code, message=message, detail=detail or {}),
        warnings=warnings or [],
    )
