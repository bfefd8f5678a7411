"""Rich/JSON output helpers.

The CLI shows response envelopes to humans (Rich) or machines (--json).
JSON output is exactly the wire envelope an MCP client would receive.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mategate.domain.envelope import ResponseEnvelope


@dataclass(frozen=True)
class OutputSettings:
    """Output mode flags for formatting."""

    json_output: bool = False
    verbose: bool = False


def format_response(envelope: ResponseEnvelope, *, settings: OutputSettings | None = None) -> str:
    """Format a response envelope for display."""
    settings = settings or OutputSettings()
    if settings.json_output:
        return json.dumps(envelope.to_wire(), indent=2, default=str)

    from mategate.output.renderers import render_response

    return render_response(envelope, verbose=settings.verbose)
