"""Pluggy hook specifications for mategate.

Two observation hooks fire after a roundtrip commit and after a code
run. One setup-time hook lets plugins contribute sandbox providers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from mategate.infrastructure.sandbox.base import SandboxProvider

hookspec = pluggy.HookspecMarker("mategate")


class MategateHookSpec:
    """Hook specifications for the mategate plugin system."""

    @hookspec
    def post_roundtrip_commit(
        self,
        manifest_id: str,
        project_id: str,
        owner: str,
        paths: list[str],
    ) -> None:
        """Called after a roundtrip commit has written every path."""

    @hookspec
    def post_code_run(
        self,
        identity: str,
        language: str,
        provider: str,
        success: bool,
        exit_code: int,
        execution_time_ms: int,
    ) -> None:
        """Called after a ``code run`` produced an outcome (not on timeouts)."""

    @hookspec
    def register_sandbox_providers(self) -> list[SandboxProvider] | None:
        """Return extra sandbox providers, matched to config entries by ``name``."""
