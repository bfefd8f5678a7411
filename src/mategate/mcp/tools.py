"""MCP tools: one per domain facade, plus ``domains``.

Every domain tool takes ``(cmd, params, detail)`` and returns the wire
response envelope. The ``*_impl`` functions are testable without the mcp
package; ``register_tools()`` wraps them with FastMCP decorators.

Domain tools are coroutines that hand dispatch to a worker thread, so a
long ``code run`` never stalls the server's event loop. When the client
cancels a call the request's cancel event is set and the worker tears
its sandbox down.
"""

from __future__ import annotations

import threading
from typing import Any

import anyio
from anyio import to_thread

from mategate.domain.envelope import ResponseEnvelope

_DOMAIN_DESCRIPTIONS: dict[str, str] = {
    "files": (
        "Atomic multi-file edits. cmd: roundtrip_start {projectId, paths}, "
        "roundtrip_preview {manifestId, changes}, roundtrip_commit {manifestId, changes, mode}, "
        "roundtrip_status {manifestId}, read {projectId, path}."
    ),
    "code": (
        "Sandboxed code execution. cmd: run {language, code, timeout?, stdin?}, "
        "validate {language, code}, languages, health."
    ),
    "search": "Search your records. cmd: query {text, domains?, limit?}.",
    "hydration": "Recent records per domain for context loading. cmd: load {domains?, limit?}.",
}

_RECORD_DESCRIPTION = (
    "Owner-scoped {domain} records. cmd: create {title, body?, tags?, data?}, get {id}, "
    "list {tag?, limit?, offset?}, update {id, title?, body?, tags?, data?}, delete {id}."
)


def describe_domain(domain: str) -> str:
    return _DOMAIN_DESCRIPTIONS.get(domain, _RECORD_DESCRIPTION.format(domain=domain))


def exposed_domains(gateway: Any) -> list[str]:
    """Enabled domains, narrowed by ``[mcp] domains`` when set."""
    wanted = set(gateway.settings.mcp.domains)
    return [
        name
        for name in gateway.registry.names()
        if gateway.registry.is_enabled(name) and (not wanted or name in wanted)
    ]


def dispatch_impl(
    gateway: Any,
    domain: str,
    cmd: str,
    params: dict[str, Any] | None = None,
    detail: str | None = None,
    *,
    cancel: threading.Event | None = None,
) -> dict[str, Any]:
    """Dispatch one command and return the wire envelope."""
    envelope: dict[str, Any] = {"cmd": cmd, "params": params or {}}
    if detail is not None:
        envelope["detail"] = detail
    return gateway.dispatch(domain, envelope, cancel=cancel).to_wire()


def domains_impl(gateway: Any) -> dict[str, Any]:
    """List exposed domains with their commands."""
    exposed = set(exposed_domains(gateway))
    items = [item for item in gateway.registry.describe() if item["domain"] in exposed]
    return ResponseEnvelope.success("domains", items).to_wire()


def _domain_tool(gateway: Any, domain: str) -> Any:
    async def tool(
        cmd: str,
        params: dict[str, Any] | None = None,
        detail: str = "standard",
    ) -> dict[str, Any]:
        cancel = threading.Event()

        def run() -> dict[str, Any]:
            return dispatch_impl(gateway, domain, cmd, params, detail, cancel=cancel)

        try:
            return await to_thread.run_sync(run, abandon_on_cancel=True)
        except anyio.get_cancelled_exc_class():
            cancel.set()
            raise

    tool.__name__ = domain
    tool.__doc__ = describe_domain(domain)
    return tool


def register_tools(server: Any, gateway: Any) -> None:
    """Register every exposed domain as an MCP tool."""
    for domain in exposed_domains(gateway):
        server.tool(name=domain, description=describe_domain(domain))(
            _domain_tool(gateway, domain)
        )

    @server.tool()  # type: ignore[untyped-decorator]
    def domains() -> dict[str, Any]:
        """List the domains this server exposes and their commands."""
        return domains_impl(gateway)
