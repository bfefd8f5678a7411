"""Project-root-scoped file access with atomic writes and compensation.

Every path a caller supplies is relative to a project root. Paths that
escape the root after normalization (absolute paths, ``..`` beyond the
root, symlinks pointing outside) raise :class:`PathEscapeError` before any
I/O happens.

Writes go through a temp file in the target directory, ``fsync`` and an
``os.replace`` rename, so a reader sees either the old bytes or the new
bytes and never a torn file. :class:`FileTransaction` tracks every write
and delete so a failed multi-file commit can put each path back.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class PathEscapeError(ValueError):
    """A relative path resolves outside its project root."""


class RollbackError(Exception):
    """A failed transaction could not put every path back."""

    def __init__(self, unrestored: list[str]) -> None:
        super().__init__(f"Rollback left {len(unrestored)} path(s) unrestored")
        self.unrestored = unrestored


def normalize_relative(path: str) -> str:
    """Canonical ``a/b/c`` form of a project-relative path.

    ``.`` segments are dropped and ``..`` segments folded; folding past
    the root raises.

    Raises:
        PathEscapeError: The path is absolute, empty, or climbs out of the root.
    """
    if not path or "\x00" in path:
        raise PathEscapeError(f"Invalid path: {path!r}")
    unified = path.replace("\\", "/")
    if PurePosixPath(unified).is_absolute() or PureWindowsPath(path).drive:
        raise PathEscapeError(f"Absolute paths are not allowed: {path}")
    parts: list[str] = []
    for part in PurePosixPath(unified).parts:
        if part == ".":
            continue
        if part == "..":
            if not parts:
                raise PathEscapeError(f"Path escapes project root: {path}")
            parts.pop()
            continue
        parts.append(part)
    if not parts:
        raise PathEscapeError(f"Path names the project root itself: {path}")
    return "/".join(parts)


def _fsync_dir(directory: Path) -> None:
    """Flush a directory entry so a rename survives a crash (POSIX only)."""
    if os.name != "posix":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class ProjectFiles:
    """File provider scoped to one project root."""

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def resolve(self, path: str) -> Path:
        """Absolute on-disk location for *path*, after symlink resolution.

        Raises:
            PathEscapeError: The path leaves the project root.
        """
        target = (self.root / normalize_relative(path)).resolve()
        if not target.is_relative_to(self.root):
            raise PathEscapeError(f"Path escapes project root: {path}")
        return target

    def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    def size(self, path: str) -> int:
        return self.resolve(path).stat().st_size

    def read(self, path: str) -> bytes:
        return self.resolve(path).read_bytes()

    def write(self, path: str, data: bytes) -> None:
        """Atomically replace *path* with *data* (temp file + fsync + rename)."""
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
        )
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            if target.exists():
                shutil.copymode(target, tmp)
            os.replace(tmp, target)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        _fsync_dir(target.parent)

    def delete(self, path: str) -> None:
        target = self.resolve(path)
        target.unlink()
        _fsync_dir(target.parent)

    @contextmanager
    def transaction(self) -> Iterator[FileTransaction]:
        """Track writes and deletes; undo all of them if the block raises.

        Usage::

            with files.transaction() as txn:
                txn.write("a.txt", b"...")
                txn.delete("b.txt")
                # Any exception restores both paths, then propagates.

        Raises:
            RollbackError: The block failed and some paths could not be
                restored; chained to the original exception.
        """
        txn = FileTransaction(self)
        try:
            yield txn
        except BaseException as exc:
            unrestored = txn.rollback()
            if not unrestored:
                raise
            logger.error("Rollback under %s left paths unrestored: %s", self.root, unrestored)
            if not isinstance(exc, Exception):
                raise
            raise RollbackError(unrestored) from exc


# ---------------------------------------------------------------------------
# File operation tracking for compensation-based rollback
# ---------------------------------------------------------------------------


@dataclass
class _FileOp:
    """A tracked write or delete within a file transaction."""

    path: str
    backup: bytes | None  # original content, None if the file did not exist

    def rollback(self, files: ProjectFiles) -> bool:
        """Undo this file operation (best-effort). Returns False on failure."""
        try:
            if self.backup is not None:
                files.write(self.path, self.backup)
            else:
                files.resolve(self.path).unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to rollback file operation: %s", self.path, exc_info=True)
            return False
        return True


@dataclass
class FileTransaction:
    """Active set of tracked file operations.

    All writes must go through :meth:`write` / :meth:`delete` so they can
    be compensated on rollback.
    """

    files: ProjectFiles
    _ops: list[_FileOp] = field(default_factory=list, repr=False)

    def _track(self, path: str) -> None:
        backup = self.files.read(path) if self.files.exists(path) else None
        self._ops.append(_FileOp(path=path, backup=backup))

    def write(self, path: str, data: bytes) -> None:
        self._track(path)
        self.files.write(path, data)

    def delete(self, path: str) -> None:
        self._track(path)
        self.files.delete(path)

    def rollback(self) -> list[str]:
        """Restore every touched path in reverse order.

        Returns the paths that could not be restored.
        """
        failed = [op.path for op in reversed(self._ops) if not op.rollback(self.files)]
        self._ops.clear()
        return failed
