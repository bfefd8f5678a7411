"""Stable error taxonomy shared by every domain handler and the dispatcher."""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    """Machine-readable error codes surfaced in the response envelope."""

    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    DISABLED = "DISABLED"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    INTERNAL = "INTERNAL"


# Caller-safe detail keys. Anything else in ServiceError.detail stays server-side.
PUBLIC_DETAIL_KEYS: frozenset[str] = frozenset(
    {
        "retryAfter",
        "conflicts",
        "correlationId",
        "fields",
        "provider",
        "stdout",
        "stderr",
        "executionTimeMs",
        "attempts",
        "state",
        "unrestored",
    }
)

INTERNAL_MESSAGE = "Internal error"


def public_detail(detail: dict[str, object]) -> dict[str, object]:
    """Filter *detail* down to keys that may be shown to callers."""
    return {k: v for k, v in detail.items() if k in PUBLIC_DETAIL_KEYS}
