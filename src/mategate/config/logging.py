"""structlog setup shared by the CLI and the MCP server.

Everything goes to stderr: stdout carries response envelopes (CLI) or the
MCP protocol stream. ``--log-json`` switches the console renderer for one
JSON object per line.

The dispatcher binds ``correlation_id``, ``domain``, ``cmd`` and
``identity`` as context vars, so any record emitted while a command runs
carries them, stdlib records from infrastructure modules included.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

# Event keys whose values may hold caller code, file contents or secrets.
REDACTED_KEYS = frozenset({"api_key", "code", "content", "diff", "stdin", "authorization"})

_QUIET_LOGGERS = ("alembic", "httpx", "httpcore")


def redact_sensitive(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace sensitive values with their length."""
    for key in REDACTED_KEYS.intersection(event_dict):
        value = event_dict[key]
        if value is not None:
            event_dict[key] = f"<redacted {len(str(value))} chars>"
    return event_dict


def _processors(log_json: bool) -> list[structlog.types.Processor]:
    chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if log_json:
        chain.append(structlog.processors.format_exc_info)
    return chain


def configure_logging(*, verbose: bool = False, log_json: bool = False) -> None:
    """Route structlog and stdlib logging to stderr.

    Args:
        verbose: DEBUG for ``mategate.*`` loggers; otherwise WARNING.
        log_json: JSON lines instead of the console renderer.
    """
    shared = _processors(log_json)
    renderer: structlog.types.Processor
    if log_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    logging.getLogger("mategate").setLevel(logging.DEBUG if verbose else logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
