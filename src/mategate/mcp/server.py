"""FastMCP server setup.

Optional extra, guarded behind try/except ImportError.
Transport: stdio by default, SSE or streamable HTTP on request.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

mcp_available = False
_FastMCP: Any = None

try:
    from mcp.server.fastmcp import FastMCP as _FastMCP  # type: ignore[no-redef,import-not-found]

    mcp_available = True
except ImportError:
    pass

__all__ = ["create_server", "mcp_available"]


def create_server(
    *,
    data_root: Path | None = None,
    config_path: str | None = None,
    host: str = "127.0.0.1",
    port: int = 8000,
) -> Any:
    """Create and configure the MCP server.

    Builds a gateway from the settings found at *data_root* (or CWD) and
    registers one tool per exposed domain. Returns the FastMCP instance.

    Raises RuntimeError if the mcp extra is not installed.
    """
    if not mcp_available or _FastMCP is None:
        msg = "MCP extra not installed. Install with: pip install mategate[mcp]"
        raise RuntimeError(msg)

    from mategate.config.logging import configure_logging
    from mategate.config.settings import GateSettings
    from mategate.gateway.bootstrap import build_gateway
    from mategate.mcp.tools import register_tools

    settings = GateSettings.from_cli(config_path=config_path, data_root=data_root)
    # stdout belongs to the protocol; logs go to stderr as JSON.
    configure_logging(verbose=settings.verbose, log_json=True)
    if settings.verbose:
        from mategate.services.telemetry import enable_telemetry

        enable_telemetry()
    gateway = build_gateway(settings)

    server = _FastMCP(settings.gateway.name, host=host, port=port)
    register_tools(server, gateway)
    return server
