"""Sandbox provider contract.

A provider runs one :class:`~mategate.domain.execution.ExecutionRequest`
in isolation and returns an :class:`~mategate.domain.execution.ExecutionOutcome`.

Two kinds of failure are kept apart:

- *Transient* (daemon down, service unreachable, binary missing): raise
  :class:`ProviderUnavailableError`; the orchestrator tries the next
  provider.
- *Execution outcome* (non-zero exit, syntax error, timeout): return an
  outcome; the orchestrator stops and reports it.

Every provider tears its sandbox down on every exit path.
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from mategate.domain.execution import ExecutionLimits, ExecutionOutcome, ExecutionRequest


class ProviderUnavailableError(Exception):
    """The provider cannot run anything right now; try the next one."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


@runtime_checkable
class SandboxProvider(Protocol):
    """What the execution orchestrator needs from a provider."""

    name: str
    # False for providers that share the host network namespace.
    enforces_network_isolation: bool

    def supported_languages(self) -> frozenset[str]: ...

    def is_available(self) -> bool: ...

    def execute(
        self,
        request: ExecutionRequest,
        limits: ExecutionLimits,
        *,
        deadline: float,
        cancel: threading.Event | None = None,
    ) -> ExecutionOutcome:
        """Run *request* until it exits, *deadline* (``time.monotonic()``) passes,
        or *cancel* is set.

        Raises:
            ProviderUnavailableError: Nothing was run; fall back.
        """
        ...
