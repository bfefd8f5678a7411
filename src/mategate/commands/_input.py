"""Shared parsing for JSON-valued CLI options."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import click


def read_text_arg(value: str) -> str:
    """Resolve ``-`` to stdin and ``@path`` to a file's contents."""
    if value == "-":
        return sys.stdin.read()
    if value.startswith("@"):
        path = Path(value[1:])
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise click.BadParameter(f"cannot read {path}: {exc.strerror}") from exc
    return value


def load_json_arg(value: str | None, *, expect: type, name: str) -> Any:
    """Parse a JSON option value (inline, ``@file`` or ``-``)."""
    if value is None:
        return expect()
    try:
        parsed = json.loads(read_text_arg(value))
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"invalid JSON: {exc.msg}", param_hint=name) from exc
    if not isinstance(parsed, expect):
        raise click.BadParameter(f"expected a JSON {expect.__name__}", param_hint=name)
    return parsed


def parse_pairs(pairs: tuple[str, ...], *, name: str) -> dict[str, Any]:
    """``key=value`` options; values are JSON when they parse, else strings."""
    parsed: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint=name)
        try:
            parsed[key] = json.loads(raw)
        except json.JSONDecodeError:
            parsed[key] = raw
    return parsed
