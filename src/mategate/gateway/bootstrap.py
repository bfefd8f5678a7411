"""Gateway assembly: settings in, a frozen registry and dispatcher out.

The Gateway owns the database engine, the plugin manager, and every
domain handler. Transports (CLI, MCP) build one Gateway per process and
call :meth:`Gateway.dispatch`.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from mategate.domain.commands import RECORD_DOMAINS
from mategate.gateway.dispatcher import Dispatcher
from mategate.gateway.ratelimit import RateLimiter
from mategate.gateway.registry import DomainRegistry
from mategate.infrastructure.database import init_database
from mategate.infrastructure.repositories.manifests import ManifestRepository
from mategate.infrastructure.repositories.records import RecordRepository
from mategate.services._helpers import utcnow
from mategate.services.execution import ExecutionOrchestrator
from mategate.services.records import HydrationHandler, RecordsHandler, SearchHandler
from mategate.services.roundtrip import FileTransactionManager

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from mategate.config.settings import GateSettings
    from mategate.domain.envelope import RequestEnvelope, ResponseEnvelope
    from mategate.infrastructure.sandbox.base import SandboxProvider
    from mategate.plugins.manager import PluginManager

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    """A fully wired gateway."""

    settings: GateSettings
    engine: Engine
    registry: DomainRegistry
    limiter: RateLimiter
    dispatcher: Dispatcher
    files: FileTransactionManager
    code: ExecutionOrchestrator
    providers: list[SandboxProvider]
    plugins: PluginManager | None = None

    def dispatch(
        self,
        domain: str,
        envelope: RequestEnvelope | Mapping[str, Any],
        identity: str | None = None,
        *,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> ResponseEnvelope:
        return self.dispatcher.dispatch(
            domain,
            envelope,
            identity or self.settings.effective_identity,
            cancel=cancel,
            timeout=timeout,
        )

    def close(self) -> None:
        """Release HTTP clients and database connections."""
        for provider in self.providers:
            close = getattr(provider, "close", None)
            if callable(close):
                close()
        self.engine.dispose()


def load_plugins(settings: GateSettings) -> PluginManager | None:
    """Discover plugins and register the built-in audit plugin."""
    if not settings.plugins.enabled:
        return None
    from mategate.plugins.builtins.audit import AUDIT_PLUGIN_NAME, AuditPlugin
    from mategate.plugins.manager import PluginManager

    pm = PluginManager()
    pm.discover_and_load(
        local_dir=settings.data_root / ".mategate" / "plugins",
        disabled=list(settings.plugins.disabled),
    )
    pm.register_plugin(AuditPlugin(), name=AUDIT_PLUGIN_NAME)
    return pm


def default_providers(settings: GateSettings) -> list[SandboxProvider]:
    """Built-in sandbox providers configured from ``[execution]``."""
    from mategate.infrastructure.sandbox import DockerProvider, E2BProvider, SubprocessProvider

    docker = settings.execution.docker
    e2b = settings.execution.e2b
    return [
        E2BProvider(
            api_key=e2b.api_key,
            base_url=e2b.base_url,
            templates=dict(e2b.templates),
            request_timeout=e2b.request_timeout_seconds,
            sandbox_timeout=e2b.sandbox_timeout_seconds,
        ),
        DockerProvider(
            binary=docker.binary,
            images=dict(docker.images),
            startup_grace_seconds=docker.startup_grace_seconds,
        ),
        SubprocessProvider(),
    ]


def build_gateway(
    settings: GateSettings,
    *,
    providers: Iterable[SandboxProvider] | None = None,
    clock: Callable[[], datetime] = utcnow,
    monotonic: Callable[[], float] = time.monotonic,
    plugins: PluginManager | None = None,
) -> Gateway:
    """Wire every domain from *settings* and freeze the registry.

    *providers* replaces the built-in sandbox providers; plugin-contributed
    providers are added either way. *plugins* replaces discovery.
    """
    pm = plugins if plugins is not None else load_plugins(settings)
    sandbox = list(providers) if providers is not None else default_providers(settings)
    if pm is not None:
        known = {p.name for p in sandbox}
        for contributed in pm.collect_sandbox_providers():
            if contributed.name in known:
                logger.warning("Ignoring duplicate sandbox provider %s", contributed.name)
                continue
            sandbox.append(contributed)
            known.add(contributed.name)

    engine = init_database(settings.db_path)
    record_repo = RecordRepository(engine)
    domains = settings.domains

    files = FileTransactionManager(
        ManifestRepository(engine),
        settings.files,
        data_root=settings.data_root,
        plugins=pm,
        clock=clock,
    )
    code = ExecutionOrchestrator(settings.execution, sandbox, plugins=pm)

    registry = DomainRegistry()
    registry.register("files", files, enabled=domains.is_enabled("files"))
    registry.register("code", code, enabled=domains.is_enabled("code"))
    for name in RECORD_DOMAINS:
        registry.register(
            name, RecordsHandler(name, record_repo), enabled=domains.is_enabled(name)
        )
    registry.register(
        "search",
        SearchHandler(record_repo, registry.is_enabled),
        enabled=domains.is_enabled("search"),
    )
    registry.register(
        "hydration",
        HydrationHandler(record_repo, registry.is_enabled),
        enabled=domains.is_enabled("hydration"),
    )
    registry.freeze()

    limiter = RateLimiter(settings.rate_limit, clock=monotonic)
    logger.debug("Gateway ready: %s", ", ".join(registry.names()))
    return Gateway(
        settings=settings,
        engine=engine,
        registry=registry,
        limiter=limiter,
        dispatcher=Dispatcher(registry, limiter),
        files=files,
        code=code,
        providers=sandbox,
        plugins=pm,
    )
