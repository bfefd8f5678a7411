"""Root CLI group for mategate with global flags and command registration."""

from __future__ import annotations

import click

from mategate import __version__
from mategate.commands import register_commands
from mategate.commands._context import AppContext
from mategate.config.settings import GateSettings


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="mategate")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logs and timing telemetry.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option("--user", "identity", default=None, help="Caller identity for this invocation.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    identity: str | None,
) -> None:
    """mategate: command-dispatch gateway for files, code and records."""
    # Unset flags stay out so env vars and mategate.toml can supply them.
    given = {
        "json_output": json_output,
        "verbose": verbose,
        "log_json": log_json,
        "identity": identity,
    }
    flags = {key: value for key, value in given.items() if value}
    settings = GateSettings.from_cli(config_path=config_path, **flags)
    app = AppContext(settings)
    ctx.obj = app
    ctx.call_on_close(app.close)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
