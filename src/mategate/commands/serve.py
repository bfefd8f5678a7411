"""serve: start the MCP server (requires the mategate[mcp] extra)."""

from __future__ import annotations

import click

from mategate.commands._base import GateCommand
from mategate.commands._context import AppContext


@click.command(
    cls=GateCommand,
    examples="""\
  # Start the MCP server (stdio transport, default)
  mategate serve

  # Streamable HTTP on a custom host/port
  mategate serve --transport streamable-http --host 0.0.0.0 --port 9000""",
)
@click.option(
    "--transport",
    default=None,
    type=click.Choice(["stdio", "sse", "streamable-http"]),
    help="MCP transport protocol (default: [mcp] transport).",
)
@click.option("--host", default="127.0.0.1", help="Bind address (HTTP transports only).")
@click.option("--port", default=8000, type=int, help="Listen port (HTTP transports only).")
@click.pass_obj
def serve(app: AppContext, transport: str | None, host: str, port: int) -> None:
    """Start the MCP server."""
    from mategate.mcp.server import create_server, mcp_available

    if not mcp_available:
        click.echo("MCP not installed. Install with: pip install mategate[mcp]", err=True)
        raise SystemExit(1)
    if not app.settings.mcp.enabled:
        click.echo("MCP is disabled ([mcp] enabled = false).", err=True)
        raise SystemExit(1)

    server = create_server(
        data_root=app.settings.data_root,
        config_path=str(app.settings.config_path) if app.settings.config_path else None,
        host=host,
        port=port,
    )
    server.run(transport=transport or app.settings.mcp.transport)
