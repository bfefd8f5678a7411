"""call: send a raw command envelope to any domain."""

from __future__ import annotations

import click

from mategate.commands._base import GateCommand
from mategate.commands._context import AppContext
from mategate.commands._input import load_json_arg, parse_pairs
from mategate.domain.envelope import DetailLevel


@click.command(
    cls=GateCommand,
    examples="""\
  # Create a memory
  mategate call memories create --params '{"title": "Deploy notes", "tags": ["ops"]}'

  # Same thing with key=value pairs
  mategate call memories create -p title="Deploy notes" -p tags='["ops"]'

  # Full detail, JSON output
  mategate --json call files roundtrip_status -p manifestId=rt_0123 --detail full

  # Params from a file
  mategate call code run --params @request.json""",
)
@click.argument("domain")
@click.argument("cmd")
@click.option("--params", "params_json", default=None, help="Params as JSON, @file, or -.")
@click.option("-p", "--param", "pairs", multiple=True, help="Single param as key=value.")
@click.option(
    "--detail",
    type=click.Choice([level.value for level in DetailLevel]),
    default=None,
    help="Response detail level.",
)
@click.pass_obj
def call(
    app: AppContext,
    domain: str,
    cmd: str,
    params_json: str | None,
    pairs: tuple[str, ...],
    detail: str | None,
) -> None:
    """Dispatch CMD to DOMAIN and print the response envelope."""
    params = load_json_arg(params_json, expect=dict, name="--params")
    params.update(parse_pairs(pairs, name="--param"))
    app.emit(app.call(domain, cmd, params, detail=detail))
