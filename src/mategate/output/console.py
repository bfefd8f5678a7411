"""Rich Console factory and theme for mategate output.

Consoles render to a StringIO buffer so renderers keep a plain
``-> str`` contract. Rich drops color codes on its own in non-TTY
environments (tests, pipes).
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

GATE_THEME = Theme(
    {
        "gate.ok": "bold green",
        "gate.error": "bold red",
        "gate.warning": "bold yellow",
        "gate.cmd": "bold cyan",
        "gate.key": "dim",
        "gate.id": "bold blue",
        "gate.path": "dim",
        "gate.code": "magenta",
        "gate.stderr": "red",
    }
)


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer."""
    return Console(
        file=StringIO(),
        theme=GATE_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()
