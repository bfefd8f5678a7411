"""AppContext: shared Click context for all commands.

Created once by the root CLI group and passed to subcommands via
``@click.pass_obj``. The gateway is built lazily so ``--help`` and
``--version`` never touch the database or check sandbox providers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import click

from mategate.output.formatters import OutputSettings, format_response

if TYPE_CHECKING:
    from mategate.config.settings import GateSettings
    from mategate.domain.envelope import ResponseEnvelope
    from mategate.gateway.bootstrap import Gateway


class AppContext:
    """Shared context flowing through Click's command hierarchy."""

    def __init__(self, settings: GateSettings) -> None:
        self.settings = settings
        self._gateway: Gateway | None = None

        from mategate.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        if settings.verbose:
            from mategate.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def gateway(self) -> Gateway:
        """The gateway (built on first access)."""
        if self._gateway is None:
            from mategate.gateway.bootstrap import build_gateway

            self._gateway = build_gateway(self.settings)
        return self._gateway

    def call(
        self,
        domain: str,
        cmd: str,
        params: dict[str, Any] | None = None,
        *,
        detail: str | None = None,
    ) -> ResponseEnvelope:
        """Dispatch one command as the CLI identity."""
        envelope: dict[str, Any] = {"cmd": cmd, "params": params or {}}
        if detail is not None:
            envelope["detail"] = detail
        return self.gateway.dispatch(domain, envelope)

    def emit(self, envelope: ResponseEnvelope) -> None:
        """Print a response envelope with correct exit semantics.

        Success goes to stdout. Failure goes to stderr and exits 1.
        Warnings go to stderr in human mode so piped output stays clean.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            verbose=self.settings.verbose,
        )
        output = format_response(envelope, settings=settings)
        if envelope.ok:
            click.echo(output)
            if not settings.json_output:
                for warning in (envelope.meta or {}).get("warnings", []):
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)

    def close(self) -> None:
        if self._gateway is not None:
            self._gateway.close()
            self._gateway = None
