"""roundtrip: read-verify-write transactions over project files."""

from __future__ import annotations

import click

from mategate.commands._base import GateGroup
from mategate.commands._context import AppContext
from mategate.commands._input import load_json_arg
from mategate.domain.envelope import ResponseEnvelope


@click.group(
    cls=GateGroup,
    examples="""\
  # Capture baselines for two files
  mategate roundtrip start webapp src/app.py README.md

  # See what a change set would do (with diffs)
  mategate roundtrip preview rt_... --changes @changes.json --detail full

  # Apply it atomically
  mategate roundtrip commit rt_... --changes @changes.json

  # Apply unified diffs instead of full contents
  mategate roundtrip commit rt_... --changes @patches.json --mode patch

  # Expire stale manifests
  mategate roundtrip sweep""",
)
def roundtrip() -> None:
    """Atomic multi-file edits guarded by content fingerprints."""


_detail_option = click.option(
    "--detail",
    type=click.Choice(["minimal", "standard", "full"]),
    default=None,
    help="Response detail level.",
)
_changes_option = click.option(
    "--changes",
    "changes_json",
    required=True,
    help="JSON list of {path, operation?, content?, diff?} (inline, @file or -).",
)
_mode_option = click.option(
    "--mode",
    type=click.Choice(["replace", "patch"]),
    default="replace",
    show_default=True,
    help="Operation for changes that omit one.",
)


@roundtrip.command()
@click.argument("project_id")
@click.argument("paths", nargs=-1, required=True)
@_detail_option
@click.pass_obj
def start(app: AppContext, project_id: str, paths: tuple[str, ...], detail: str | None) -> None:
    """Fingerprint PATHS in PROJECT_ID and open a manifest."""
    params = {"projectId": project_id, "paths": list(paths)}
    app.emit(app.call("files", "roundtrip_start", params, detail=detail))


@roundtrip.command()
@click.argument("manifest_id")
@_changes_option
@_mode_option
@_detail_option
@click.pass_obj
def preview(
    app: AppContext, manifest_id: str, changes_json: str, mode: str, detail: str | None
) -> None:
    """Show what committing the changes would do."""
    params = {
        "manifestId": manifest_id,
        "changes": load_json_arg(changes_json, expect=list, name="--changes"),
        "mode": mode,
    }
    app.emit(app.call("files", "roundtrip_preview", params, detail=detail))


@roundtrip.command()
@click.argument("manifest_id")
@_changes_option
@_mode_option
@_detail_option
@click.pass_obj
def commit(
    app: AppContext, manifest_id: str, changes_json: str, mode: str, detail: str | None
) -> None:
    """Write every change, or none of them."""
    params = {
        "manifestId": manifest_id,
        "changes": load_json_arg(changes_json, expect=list, name="--changes"),
        "mode": mode,
    }
    app.emit(app.call("files", "roundtrip_commit", params, detail=detail))


@roundtrip.command()
@click.argument("manifest_id")
@_detail_option
@click.pass_obj
def status(app: AppContext, manifest_id: str, detail: str | None) -> None:
    """Show a manifest's state."""
    app.emit(app.call("files", "roundtrip_status", {"manifestId": manifest_id}, detail=detail))


@roundtrip.command()
@click.pass_obj
def sweep(app: AppContext) -> None:
    """Expire every open manifest past its TTL."""
    expired = app.gateway.files.sweep_expired()
    app.emit(ResponseEnvelope.success("sweep", {"expired": len(expired), "ids": expired}))
