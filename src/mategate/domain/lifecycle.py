"""Roundtrip manifest lifecycle.

Started --preview--> Previewed --commit ok--> Committed
Started|Previewed --commit conflict/error--> Aborted
any non-terminal --TTL elapsed--> Expired
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any


class ManifestState(StrEnum):
    """Machine state of a roundtrip manifest."""

    STARTED = "started"
    PREVIEWED = "previewed"
    COMMITTED = "committed"
    ABORTED = "aborted"
    EXPIRED = "expired"


MANIFEST_TRANSITIONS: dict[str, list[str]] = {
    "started": ["previewed", "committed", "aborted", "expired"],
    "previewed": ["previewed", "committed", "aborted", "expired"],
    "committed": [],
    "aborted": [],
    "expired": [],
}

TERMINAL_STATES: frozenset[str] = frozenset(
    {ManifestState.COMMITTED, ManifestState.ABORTED, ManifestState.EXPIRED}
)

# States from which preview and commit are accepted.
OPEN_STATES: frozenset[str] = frozenset({ManifestState.STARTED, ManifestState.PREVIEWED})


def is_valid_transition(
    current: str,
    target: str,
    transitions: dict[str, list[str]] = MANIFEST_TRANSITIONS,
) -> bool:
    """Check if transitioning from *current* to *target* is allowed."""
    allowed = transitions.get(current, [])
    return target in allowed


def is_terminal(state: str) -> bool:
    """Whether *state* closes the manifest for good."""
    return state in TERMINAL_STATES


@dataclass(frozen=True)
class Manifest:
    """A roundtrip manifest.

    ``baseline`` maps each path to the sha256 fingerprint captured at
    start. It is never refreshed, so every later check compares against
    what the caller originally read.
    """

    id: str
    project_id: str
    owner: str
    paths: tuple[str, ...]
    baseline: Mapping[str, str]
    state: ManifestState
    created_at: datetime
    expires_at: datetime
    updated_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_data(self, *, include_fingerprints: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "manifestId": self.id,
            "projectId": self.project_id,
            "state": str(self.state),
            "paths": list(self.paths),
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }
        if include_fingerprints:
            data["fingerprints"] = dict(self.baseline)
        return data
