"""Built-in audit plugin.

Writes one structured log record per committed roundtrip and per code run
to the ``mategate.audit`` logger. Registered by bootstrap unless listed in
``[plugins] disabled``.
"""

from __future__ import annotations

import pluggy
import structlog

hookimpl = pluggy.HookimplMarker("mategate")

AUDIT_PLUGIN_NAME = "mategate-audit"


class AuditPlugin:
    """Audit trail for writes and executions."""

    def __init__(self) -> None:
        self._log = structlog.get_logger("mategate.audit")

    @hookimpl
    def post_roundtrip_commit(
        self,
        manifest_id: str,
        project_id: str,
        owner: str,
        paths: list[str],
    ) -> None:
        self._log.info(
            "roundtrip.committed",
            manifest_id=manifest_id,
            project_id=project_id,
            owner=owner,
            paths=paths,
        )

    @hookimpl
    def post_code_run(
        self,
        identity: str,
        language: str,
        provider: str,
        success: bool,
        exit_code: int,
        execution_time_ms: int,
    ) -> None:
        self._log.info(
            "code.run",
            identity=identity,
            language=language,
            provider=provider,
            success=success,
            exit_code=exit_code,
            execution_time_ms=execution_time_ms,
        )
