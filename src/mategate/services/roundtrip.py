"""File transaction manager: the ``files`` domain and its roundtrip protocol.

start captures sha256 baselines for a set of project files. preview
re-checks the baselines of the paths a change set touches and reports what
commit would do. commit re-checks the same baselines, stages every change
in memory, and only then writes, restoring every touched path if any write
fails.

INVARIANT: a commit either writes every change and ends ``committed``, or
writes nothing (after compensation) and ends ``aborted``.
INVARIANT: baselines are never refreshed; a manifest is single-use.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from mategate.domain.changes import Change, ChangeOperation, StagedChange, fingerprint
from mategate.domain.changes import stage_change as stage_one
from mategate.domain.commands import (
    FILES_COMMANDS,
    ReadFileParams,
    RoundtripCommitParams,
    RoundtripPreviewParams,
    RoundtripStartParams,
    RoundtripStatusParams,
)
from mategate.domain.envelope import DetailLevel
from mategate.domain.errors import ErrorCode
from mategate.domain.ids import generate_manifest_id
from mategate.domain.lifecycle import OPEN_STATES, Manifest, ManifestState, is_terminal
from mategate.infrastructure.filesystem import (
    PathEscapeError,
    ProjectFiles,
    RollbackError,
    normalize_relative,
)
from mategate.infrastructure.locks import KeyedLocks
from mategate.services._helpers import utcnow
from mategate.services.base import CallContext, DomainHandler
from mategate.services.result import ServiceResult, failure, success
from mategate.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from mategate.config.models import FilesConfig
    from mategate.infrastructure.repositories.manifests import ManifestRepository
    from mategate.plugins.manager import PluginManager

log = structlog.get_logger(__name__)


class _Rejected(Exception):
    """Internal short-circuit carrying a typed failure."""

    def __init__(self, code: ErrorCode, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.detail = detail

    def result(self, op: str) -> ServiceResult:
        return failure(op, self.code, self.message, detail=self.detail)


class FileTransactionManager(DomainHandler):
    """Handler for the ``files`` domain."""

    domain = "files"
    commands = FILES_COMMANDS

    def __init__(
        self,
        repository: ManifestRepository,
        config: FilesConfig,
        *,
        data_root: Path,
        plugins: PluginManager | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(plugins)
        self._repo = repository
        self._config = config
        self._data_root = data_root
        self._clock = clock
        self._manifest_locks = KeyedLocks()
        self._path_locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Project and manifest resolution
    # ------------------------------------------------------------------

    def _anchor(self, value: str) -> Path:
        p = Path(value).expanduser()
        return p if p.is_absolute() else self._data_root / p

    def project_files(self, project_id: str) -> ProjectFiles:
        """File provider for *project_id*.

        Raises:
            _Rejected: INVALID_INPUT for a malformed ID, NOT_FOUND if the
                project root does not exist.
        """
        if project_id in self._config.projects:
            root = self._anchor(self._config.projects[project_id])
        else:
            try:
                segment = normalize_relative(project_id)
            except PathEscapeError as exc:
                raise _Rejected(ErrorCode.INVALID_INPUT, f"Invalid projectId: {exc}") from exc
            if "/" in segment:
                raise _Rejected(ErrorCode.INVALID_INPUT, f"Invalid projectId: {project_id}")
            root = self._anchor(self._config.projects_root) / segment
        if not root.is_dir():
            raise _Rejected(ErrorCode.NOT_FOUND, f"Project not found: {project_id}")
        return ProjectFiles(root)

    def _expire(self, manifest: Manifest, now: datetime) -> None:
        if self._repo.transition(
            manifest.id, ManifestState.EXPIRED, from_states=OPEN_STATES, now=now
        ):
            log.info("roundtrip.expired", manifest_id=manifest.id)

    def _load(self, manifest_id: str, ctx: CallContext, *, open_only: bool = True) -> Manifest:
        """Fetch a manifest the caller may act on.

        Expired, missing, and other owners' manifests are indistinguishable
        to the caller: all are NOT_FOUND.
        """
        not_found = _Rejected(ErrorCode.NOT_FOUND, f"Manifest not found: {manifest_id}")
        manifest = self._repo.get(manifest_id)
        if manifest is None or manifest.owner != ctx.identity:
            raise not_found
        now = self._clock()
        if manifest.state in OPEN_STATES and manifest.is_expired(now):
            self._expire(manifest, now)
            raise not_found
        if manifest.state is ManifestState.EXPIRED:
            raise not_found
        if open_only and is_terminal(manifest.state):
            raise not_found
        return manifest

    # ------------------------------------------------------------------
    # Change validation, conflict detection, staging
    # ------------------------------------------------------------------

    def _normalize_changes(self, manifest: Manifest, changes: list[Change]) -> list[Change]:
        allowed = set(manifest.paths)
        seen: set[str] = set()
        normalized: list[Change] = []
        for change in changes:
            try:
                path = normalize_relative(change.path)
            except PathEscapeError as exc:
                raise _Rejected(ErrorCode.INVALID_INPUT, str(exc), fields=["changes"]) from exc
            if path not in allowed:
                raise _Rejected(
                    ErrorCode.INVALID_INPUT,
                    f"Path is not part of the manifest: {change.path}",
                    fields=["changes"],
                )
            if path in seen:
                raise _Rejected(
                    ErrorCode.INVALID_INPUT,
                    f"Duplicate change for path: {change.path}",
                    fields=["changes"],
                )
            seen.add(path)
            normalized.append(change.model_copy(update={"path": path}))
        return normalized

    def _read_current(self, files: ProjectFiles, path: str) -> bytes | None:
        return files.read(path) if files.exists(path) else None

    def _conflicts(self, manifest: Manifest, files: ProjectFiles, paths: list[str]) -> list[str]:
        """Paths whose current content no longer matches the baseline."""
        conflicts: list[str] = []
        for path in paths:
            current = self._read_current(files, path)
            if current is None or fingerprint(current) != manifest.baseline[path]:
                conflicts.append(path)
        return conflicts

    def _stage(
        self,
        files: ProjectFiles,
        changes: list[Change],
        default: ChangeOperation,
    ) -> list[StagedChange]:
        staged: list[StagedChange] = []
        for change in changes:
            current = self._read_current(files, change.path) or b""
            try:
                item = stage_one(change, current, default)
            except ValueError as exc:
                raise _Rejected(ErrorCode.INVALID_INPUT, str(exc), fields=["changes"]) from exc
            if item.after is not None and len(item.after) > self._config.max_file_bytes:
                raise _Rejected(
                    ErrorCode.INVALID_INPUT,
                    f"New content for {change.path} exceeds {self._config.max_file_bytes} bytes",
                    fields=["changes"],
                )
            staged.append(item)
        return staged

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @traced
    def handle_roundtrip_start(
        self, params: RoundtripStartParams, ctx: CallContext
    ) -> ServiceResult:
        op = "roundtrip_start"
        try:
            files = self.project_files(params.project_id)
            paths: list[str] = []
            for raw in params.paths:
                try:
                    path = normalize_relative(raw)
                    files.resolve(path)
                except PathEscapeError as exc:
                    raise _Rejected(ErrorCode.INVALID_INPUT, str(exc), fields=["paths"]) from exc
                if path in paths:
                    raise _Rejected(
                        ErrorCode.INVALID_INPUT, f"Duplicate path: {raw}", fields=["paths"]
                    )
                paths.append(path)

            baseline: dict[str, str] = {}
            with trace_span("fingerprint"):
                for path in paths:
                    if not files.exists(path):
                        raise _Rejected(ErrorCode.NOT_FOUND, f"File not found: {path}")
                    if files.size(path) > self._config.max_file_bytes:
                        raise _Rejected(
                            ErrorCode.INVALID_INPUT,
                            f"File exceeds {self._config.max_file_bytes} bytes: {path}",
                            fields=["paths"],
                        )
                    baseline[path] = fingerprint(files.read(path))
        except _Rejected as rejected:
            return rejected.result(op)

        now = self._clock()
        manifest = Manifest(
            id=generate_manifest_id(),
            project_id=params.project_id,
            owner=ctx.identity,
            paths=tuple(paths),
            baseline=baseline,
            state=ManifestState.STARTED,
            created_at=now,
            expires_at=now + timedelta(seconds=self._config.manifest_ttl_seconds),
            updated_at=now,
        )
        self._repo.insert(manifest)
        log.info(
            "roundtrip.started",
            manifest_id=manifest.id,
            project_id=manifest.project_id,
            paths=len(paths),
        )

        if ctx.detail is DetailLevel.MINIMAL:
            data = {"manifestId": manifest.id, "expiresAt": manifest.expires_at.isoformat()}
        else:
            data = manifest.to_data(include_fingerprints=True)
        return success(op, data)

    @traced
    def handle_roundtrip_preview(
        self, params: RoundtripPreviewParams, ctx: CallContext
    ) -> ServiceResult:
        op = "roundtrip_preview"
        with self._manifest_locks.hold(params.manifest_id):
            try:
                manifest = self._load(params.manifest_id, ctx)
                files = self.project_files(manifest.project_id)
                changes = self._normalize_changes(manifest, params.changes)
                conflicts = self._conflicts(manifest, files, [c.path for c in changes])
                if conflicts:
                    log.info(
                        "roundtrip.preview_conflict",
                        manifest_id=manifest.id,
                        conflicts=conflicts,
                    )
                    raise _Rejected(
                        ErrorCode.CONFLICT,
                        f"Files changed since roundtrip_start: {', '.join(conflicts)}",
                        conflicts=conflicts,
                    )
                with trace_span("stage"):
                    staged = self._stage(files, changes, params.default_operation)
            except _Rejected as rejected:
                return rejected.result(op)

            if ctx.cancelled:
                return failure(op, ErrorCode.TIMEOUT, "Request cancelled")

            self._repo.transition(
                manifest.id,
                ManifestState.PREVIEWED,
                from_states=OPEN_STATES,
                now=self._clock(),
            )

        summaries = [s.summary(include_diff=ctx.detail is DetailLevel.FULL) for s in staged]
        data: dict[str, Any] = {
            "manifestId": manifest.id,
            "state": str(ManifestState.PREVIEWED),
            "filesChanged": sum(1 for s in summaries if s["changed"]),
        }
        if ctx.detail is not DetailLevel.MINIMAL:
            data["changes"] = summaries
        return success(op, data)

    @traced
    def handle_roundtrip_commit(
        self, params: RoundtripCommitParams, ctx: CallContext
    ) -> ServiceResult:
        op = "roundtrip_commit"
        warnings: list[str] = []
        with self._manifest_locks.hold(params.manifest_id):
            try:
                manifest = self._load(params.manifest_id, ctx)
                files = self.project_files(manifest.project_id)
                changes = self._normalize_changes(manifest, params.changes)
            except _Rejected as rejected:
                return rejected.result(op)

            if ctx.cancelled:
                return failure(op, ErrorCode.TIMEOUT, "Request cancelled")

            path_keys = [str(files.root / c.path) for c in changes]
            with self._path_locks.hold_many(path_keys):
                try:
                    conflicts = self._conflicts(manifest, files, [c.path for c in changes])
                    if conflicts:
                        raise _Rejected(
                            ErrorCode.CONFLICT,
                            f"Files changed since roundtrip_start: {', '.join(conflicts)}",
                            conflicts=conflicts,
                        )
                    with trace_span("stage"):
                        staged = self._stage(files, changes, params.default_operation)
                except _Rejected as rejected:
                    self._abort(manifest, reason=rejected.message)
                    return rejected.result(op)

                try:
                    with trace_span("write"), files.transaction() as txn:
                        for item in staged:
                            if item.after is None:
                                txn.delete(item.path)
                            else:
                                txn.write(item.path, item.after)
                except RollbackError as exc:
                    log.error(
                        "roundtrip.rollback_incomplete",
                        manifest_id=manifest.id,
                        correlation_id=ctx.correlation_id,
                        unrestored=exc.unrestored,
                        exc_info=exc.__cause__,
                    )
                    self._abort(manifest, reason="write failed; rollback incomplete")
                    return failure(
                        op,
                        ErrorCode.INTERNAL,
                        "Commit failed and some files could not be restored: "
                        + ", ".join(exc.unrestored),
                        detail={
                            "state": str(ManifestState.ABORTED),
                            "unrestored": exc.unrestored,
                        },
                    )
                except Exception:
                    log.exception(
                        "roundtrip.commit_failed",
                        manifest_id=manifest.id,
                        correlation_id=ctx.correlation_id,
                    )
                    self._abort(manifest, reason="write failed")
                    return failure(
                        op,
                        ErrorCode.INTERNAL,
                        "Commit failed; no changes were applied",
                        detail={"state": str(ManifestState.ABORTED)},
                    )

            self._repo.transition(
                manifest.id,
                ManifestState.COMMITTED,
                from_states=OPEN_STATES,
                now=self._clock(),
            )

        log.info("roundtrip.committed", manifest_id=manifest.id, paths=len(staged))
        self._dispatch_event(
            "post_roundtrip_commit",
            {
                "manifest_id": manifest.id,
                "project_id": manifest.project_id,
                "owner": manifest.owner,
                "paths": [s.path for s in staged],
            },
            warnings,
        )
        data: dict[str, Any] = {
            "manifestId": manifest.id,
            "state": str(ManifestState.COMMITTED),
            "filesWritten": len(staged),
        }
        if ctx.detail is not DetailLevel.MINIMAL:
            data["changes"] = [
                {"path": s.path, "operation": str(s.operation)} for s in staged
            ]
        return success(op, data, warnings=warnings)

    def _abort(self, manifest: Manifest, *, reason: str) -> None:
        self._repo.transition(
            manifest.id, ManifestState.ABORTED, from_states=OPEN_STATES, now=self._clock()
        )
        log.info("roundtrip.aborted", manifest_id=manifest.id, reason=reason)

    def handle_roundtrip_status(
        self, params: RoundtripStatusParams, ctx: CallContext
    ) -> ServiceResult:
        op = "roundtrip_status"
        with self._manifest_locks.hold(params.manifest_id):
            try:
                manifest = self._load(params.manifest_id, ctx, open_only=False)
            except _Rejected as rejected:
                return rejected.result(op)
        return success(
            op, manifest.to_data(include_fingerprints=ctx.detail is not DetailLevel.MINIMAL)
        )

    def handle_read(self, params: ReadFileParams, ctx: CallContext) -> ServiceResult:
        op = "read"
        try:
            files = self.project_files(params.project_id)
            try:
                path = normalize_relative(params.path)
                exists = files.exists(path)
            except PathEscapeError as exc:
                raise _Rejected(ErrorCode.INVALID_INPUT, str(exc), fields=["path"]) from exc
            if not exists:
                raise _Rejected(ErrorCode.NOT_FOUND, f"File not found: {path}")
            if files.size(path) > self._config.max_file_bytes:
                raise _Rejected(
                    ErrorCode.INVALID_INPUT,
                    f"File exceeds {self._config.max_file_bytes} bytes: {path}",
                    fields=["path"],
                )
            raw = files.read(path)
            try:
                content = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise _Rejected(
                    ErrorCode.INVALID_INPUT, f"File is not UTF-8 text: {path}", fields=["path"]
                ) from exc
        except _Rejected as rejected:
            return rejected.result(op)

        data: dict[str, Any] = {"path": path, "fingerprint": fingerprint(raw), "bytes": len(raw)}
        if ctx.detail is not DetailLevel.MINIMAL:
            data["content"] = content
        return success(op, data)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_expired(self) -> list[str]:
        """Expire every open manifest past its TTL. Returns the expired IDs."""
        now = self._clock()
        expired: list[str] = []
        for manifest_id in self._repo.find_expired(now):
            with self._manifest_locks.hold(manifest_id):
                if self._repo.transition(
                    manifest_id, ManifestState.EXPIRED, from_states=OPEN_STATES, now=now
                ):
                    expired.append(manifest_id)
        if expired:
            log.info("roundtrip.swept", expired=len(expired))
        return expired
