"""Shared service-layer helper functions."""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    """Standard ISO 8601 with a ``Z`` suffix, second precision."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def now_iso() -> str:
    """Current UTC time as ISO 8601 (record created/modified stamps)."""
    return to_iso(utcnow())
