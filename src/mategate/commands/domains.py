"""domains: list registered domains and their commands."""

from __future__ import annotations

import click

from mategate.commands._base import GateCommand
from mategate.commands._context import AppContext
from mategate.domain.envelope import ResponseEnvelope


@click.command(
    cls=GateCommand,
    examples="""\
  mategate domains
  mategate --json domains""",
)
@click.pass_obj
def domains(app: AppContext) -> None:
    """List domains, whether each is enabled, and its commands."""
    app.emit(ResponseEnvelope.success("domains", app.gateway.registry.describe()))
