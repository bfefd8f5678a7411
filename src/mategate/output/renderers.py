"""Command-specific Rich renderers for response envelopes.

Renderers are picked by ``envelope.cmd``; unknown commands fall through
to a generic key-value (or table, for list data) renderer.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from mategate.output.console import create_console, get_output

if TYPE_CHECKING:
    from rich.console import Console

    from mategate.domain.envelope import ResponseEnvelope

_Renderer = Callable[["ResponseEnvelope", "Console"], None]


def render_response(envelope: ResponseEnvelope, *, verbose: bool = False) -> str:
    """Render an envelope for humans."""
    console = create_console()
    if envelope.ok:
        renderer = _CMD_RENDERERS.get(envelope.cmd, _render_generic)
        renderer(envelope, console)
        if verbose:
            _render_meta(console, envelope.meta or {})
    else:
        _render_error(envelope, console, verbose=verbose)
    return get_output(console).rstrip("\n")


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, envelope: ResponseEnvelope) -> None:
    console.print(Text("OK", style="gate.ok"), Text(f"  {envelope.cmd}", style="gate.cmd"))


def _scalar(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _field(console: Console, key: str, value: Any) -> None:
    k = Text(f"  {key}: ", style="gate.key")
    if key in ("id", "manifestId"):
        v = Text(str(value), style="gate.id")
    elif key == "path":
        v = Text(str(value), style="gate.path")
    else:
        v = Text(_scalar(value))
    console.print(k, v)


def _render_meta(console: Console, meta: dict[str, Any]) -> None:
    if not meta:
        return
    console.print(Text("  meta:", style="dim"))
    for key, value in meta.items():
        if key == "telemetry":
            _render_telemetry_tree(console, value, indent=4)
        else:
            console.print(f"    {key}: {_scalar(value)}")


def _render_telemetry_tree(console: Console, span: dict[str, Any], indent: int = 4) -> None:
    """Hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    duration = span.get("durationMs", 0.0)
    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"
    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {span.get('name', '?')}"
    annotations = span.get("annotations") or {}
    if annotations:
        line += "  (" + ", ".join(f"{k}={v}" for k, v in annotations.items()) + ")"
    console.print(line)
    for child in span.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _table(items: list[dict[str, Any]]) -> Table:
    columns: list[str] = []
    for item in items:
        for key in item:
            if key not in columns:
                columns.append(key)
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    for column in columns:
        is_id = column == "id"
        table.add_column(column, style="gate.id" if is_id else None, no_wrap=is_id)
    for item in items:
        table.add_row(*(_scalar(item.get(column, "")) for column in columns))
    return table


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(envelope: ResponseEnvelope, console: Console, *, verbose: bool) -> None:
    console.print(
        Text("ERROR", style="gate.error"),
        Text(f"  {envelope.cmd}", style="gate.cmd"),
        Text(f"  {envelope.code}: "),
        envelope.error or "Unknown error",
    )
    meta = dict(envelope.meta or {})
    telemetry = meta.pop("telemetry", None)
    for key in ("conflicts", "fields", "retryAfter", "correlationId", "provider", "state"):
        if key in meta:
            _field(console, key, meta.pop(key))
    if verbose:
        if telemetry is not None:
            meta["telemetry"] = telemetry
        _render_meta(console, meta)


# ── Command renderers ─────────────────────────────────────────────────


def _render_generic(envelope: ResponseEnvelope, console: Console) -> None:
    _status_line(console, envelope)
    data = envelope.data
    if isinstance(data, list):
        if data and all(isinstance(item, dict) for item in data):
            console.print(_table(data))
        else:
            for item in data:
                console.print(f"  {_scalar(item)}")
    elif isinstance(data, dict):
        for key, value in data.items():
            _field(console, key, value)
    elif data is not None:
        console.print(f"  {data}")


def _render_run(envelope: ResponseEnvelope, console: Console) -> None:
    data = envelope.data or {}
    _status_line(console, envelope)
    for key in ("provider", "exitCode", "executionTimeMs", "success", "truncated"):
        if key in data:
            _field(console, key, data[key])
    if data.get("stdout"):
        console.print(Text("  stdout:", style="gate.key"))
        console.print(Text(data["stdout"].rstrip("\n")), soft_wrap=True)
    if data.get("stderr"):
        console.print(Text("  stderr:", style="gate.key"))
        console.print(Text(data["stderr"].rstrip("\n"), style="gate.stderr"), soft_wrap=True)


def _render_validate(envelope: ResponseEnvelope, console: Console) -> None:
    data = envelope.data or {}
    _status_line(console, envelope)
    _field(console, "valid", data.get("valid"))
    for error in data.get("errors", []):
        console.print(Text(f"    {error}", style="gate.stderr"))


def _render_roundtrip(envelope: ResponseEnvelope, console: Console) -> None:
    data = dict(envelope.data or {})
    changes = data.pop("changes", None)
    _status_line(console, envelope)
    for key, value in data.items():
        _field(console, key, value)
    if changes:
        diffs = [c["diff"] for c in changes if c.get("diff")]
        console.print(_table([{k: v for k, v in c.items() if k != "diff"} for c in changes]))
        for diff in diffs:
            console.print(Text(diff.rstrip("\n"), style="gate.code"), soft_wrap=True)


_CMD_RENDERERS: dict[str, _Renderer] = {
    "run": _render_run,
    "validate": _render_validate,
    "roundtrip_preview": _render_roundtrip,
    "roundtrip_commit": _render_roundtrip,
}
