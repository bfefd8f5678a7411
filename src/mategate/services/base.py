"""DomainHandler: abstract foundation for every domain facade.

A handler owns one domain's command table (``cmd`` -> typed parameter
model) and implements each command as a ``handle_<cmd>`` method taking
the validated params and a :class:`CallContext`. Handlers return
:class:`ServiceResult`; only the dispatcher builds response envelopes.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mategate.domain.envelope import DetailLevel

if TYPE_CHECKING:
    from mategate.domain.commands import CommandParams
    from mategate.plugins.manager import PluginManager
    from mategate.services.result import ServiceResult


@dataclass(frozen=True)
class CallContext:
    """Per-request data every handler receives.

    ``cancel`` is set by the caller to abandon the request; ``deadline``
    is an optional ``time.monotonic()`` bound on the whole call.
    """

    identity: str
    detail: DetailLevel = DetailLevel.STANDARD
    correlation_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    cancel: threading.Event = field(default_factory=threading.Event)
    deadline: float | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None if unbounded."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()


class DomainHandler:
    """Base for domain handlers.

    Usage::

        class SearchHandler(DomainHandler):
            domain = "search"
            commands = {"query": SearchQueryParams}

            def handle_query(self, params, ctx) -> ServiceResult: ...
    """

    domain: str = ""
    commands: Mapping[str, type[CommandParams]] = {}

    def __init__(self, plugins: PluginManager | None = None) -> None:
        self._plugins = plugins

    def handle(self, cmd: str, params: CommandParams, ctx: CallContext) -> ServiceResult:
        """Route an already-validated command to its ``handle_<cmd>`` method."""
        method = getattr(self, f"handle_{cmd}")
        result: ServiceResult = method(params, ctx)
        return result

    def _dispatch_event(
        self,
        hook_name: str,
        payload: dict[str, Any],
        warnings: list[str],
    ) -> None:
        """Notify plugins of a lifecycle event. No-op without a plugin manager.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        if self._plugins is None:
            return
        warnings.extend(self._plugins.notify(hook_name, **payload))
