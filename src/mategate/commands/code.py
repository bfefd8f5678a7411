"""code: run and syntax-check code in a sandbox."""

from __future__ import annotations

from typing import Any

import click

from mategate.commands._base import GateGroup
from mategate.commands._context import AppContext
from mategate.commands._input import read_text_arg


@click.group(
    cls=GateGroup,
    examples="""\
  mategate code run python --code 'print(6 * 7)'
  mategate code run js @script.js --timeout 5
  mategate code run bash @job.sh --stdin @input.txt
  mategate code validate python --code 'def f(:'
  mategate code languages
  mategate code health""",
)
def code() -> None:
    """Sandboxed code execution."""


def _source(source: str | None, inline: str | None) -> str:
    if inline is not None:
        return inline
    if source is None:
        raise click.UsageError("Provide SOURCE (@file or -) or --code.")
    return read_text_arg(source)


@code.command()
@click.argument("language")
@click.argument("source", required=False)
@click.option("--code", "inline", default=None, help="Source code inline.")
@click.option("--timeout", type=float, default=None, help="Seconds before the run is killed.")
@click.option("--stdin", "stdin", default=None, help="Data for stdin (inline, @file or -).")
@click.pass_obj
def run(
    app: AppContext,
    language: str,
    source: str | None,
    inline: str | None,
    timeout: float | None,
    stdin: str | None,
) -> None:
    """Run SOURCE as LANGUAGE."""
    params: dict[str, Any] = {"language": language, "code": _source(source, inline)}
    if timeout is not None:
        params["timeout"] = timeout
    if stdin is not None:
        params["stdin"] = read_text_arg(stdin)
    app.emit(app.call("code", "run", params))


@code.command()
@click.argument("language")
@click.argument("source", required=False)
@click.option("--code", "inline", default=None, help="Source code inline.")
@click.pass_obj
def validate(app: AppContext, language: str, source: str | None, inline: str | None) -> None:
    """Syntax-check SOURCE without running it."""
    params = {"language": language, "code": _source(source, inline)}
    app.emit(app.call("code", "validate", params))


@code.command()
@click.pass_obj
def languages(app: AppContext) -> None:
    """List languages and the providers that can run them."""
    app.emit(app.call("code", "languages"))


@code.command()
@click.pass_obj
def health(app: AppContext) -> None:
    """Check every configured provider."""
    app.emit(app.call("code", "health"))
