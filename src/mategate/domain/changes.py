"""File changes staged by a roundtrip: fingerprints, patches, and diff summaries.

Pure functions only, no file I/O. The transaction manager reads current
bytes through the file provider, stages every change here in memory, and
only then touches the filesystem.
"""

from __future__ import annotations

import difflib
import hashlib
import re
from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ChangeOperation(StrEnum):
    """What a change does to its path."""

    REPLACE = "replace"
    PATCH = "patch"
    DELETE = "delete"


class Change(BaseModel):
    """One requested change in a preview/commit request.

    ``operation`` may be omitted; the commit ``mode`` then decides it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = Field(min_length=1)
    operation: ChangeOperation | None = None
    content: str | None = None
    diff: str | None = None


class PatchError(ValueError):
    """A unified diff could not be applied to the current content."""


@dataclass(frozen=True)
class StagedChange:
    """A change resolved against current content, ready to write."""

    path: str
    operation: ChangeOperation
    before: bytes
    after: bytes | None  # None means delete

    def summary(self, *, include_diff: bool = False) -> dict[str, object]:
        """Describe what writing this change would do."""
        before_text = self.before.decode("utf-8", errors="replace")
        after_text = "" if self.after is None else self.after.decode("utf-8", errors="replace")
        diff_lines = list(
            difflib.unified_diff(
                before_text.splitlines(keepends=True),
                after_text.splitlines(keepends=True),
                fromfile=f"a/{self.path}",
                tofile=f"b/{self.path}" if self.after is not None else "/dev/null",
            )
        )
        added = sum(1 for ln in diff_lines if ln.startswith("+") and not ln.startswith("+++"))
        removed = sum(1 for ln in diff_lines if ln.startswith("-") and not ln.startswith("---"))
        result: dict[str, object] = {
            "path": self.path,
            "operation": str(self.operation),
            "bytesBefore": len(self.before),
            "bytesAfter": 0 if self.after is None else len(self.after),
            "linesAdded": added,
            "linesRemoved": removed,
            "changed": self.after != self.before,
        }
        if include_diff:
            result["diff"] = "".join(diff_lines)
        return result


def fingerprint(content: bytes) -> str:
    """Whole-file content fingerprint (lowercase sha256 hex)."""
    return hashlib.sha256(content).hexdigest()


def resolve_operation(change: Change, default: ChangeOperation) -> ChangeOperation:
    """Pick the effective operation and check the change carries its payload.

    Raises:
        ValueError: If the payload does not match the operation.
    """
    op = change.operation or default
    if op is ChangeOperation.REPLACE and change.content is None:
        raise ValueError(f"{change.path}: replace requires 'content'")
    if op is ChangeOperation.PATCH and not change.diff:
        raise ValueError(f"{change.path}: patch requires 'diff'")
    return op


def stage_change(change: Change, current: bytes, default: ChangeOperation) -> StagedChange:
    """Compute the new bytes for *change* applied to *current*.

    Raises:
        ValueError: Payload does not match the operation.
        PatchError: The diff does not apply.
    """
    op = resolve_operation(change, default)
    if op is ChangeOperation.DELETE:
        return StagedChange(path=change.path, operation=op, before=current, after=None)
    if op is ChangeOperation.REPLACE:
        assert change.content is not None
        return StagedChange(
            path=change.path, operation=op, before=current, after=change.content.encode("utf-8")
        )
    assert change.diff is not None
    try:
        text = current.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PatchError(f"{change.path}: cannot patch non UTF-8 content") from exc
    patched = apply_unified_diff(text, change.diff).encode("utf-8")
    return StagedChange(path=change.path, operation=op, before=current, after=patched)


# ---------------------------------------------------------------------------
# Unified diff application
# ---------------------------------------------------------------------------

_HUNK_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


@dataclass
class _Hunk:
    old_start: int
    old_count: int
    ops: list[tuple[str, str]]  # (tag, line) with tag in " ", "-", "+"

    @property
    def old_lines(self) -> list[str]:
        return [line for tag, line in self.ops if tag != "+"]


def _strip_eol(line: str) -> str:
    return line.rstrip("\r\n")


def _parse_hunks(diff: str) -> list[_Hunk]:
    """Parse hunks, using header line counts to delimit each hunk body."""
    hunks: list[_Hunk] = []
    old_left = new_left = 0
    for raw in diff.splitlines(keepends=True):
        if raw.startswith("\\"):
            # "\ No newline at end of file" applies to the previous line.
            if hunks and hunks[-1].ops:
                tag, line = hunks[-1].ops[-1]
                hunks[-1].ops[-1] = (tag, _strip_eol(line))
            continue
        if old_left == 0 and new_left == 0:
            match = _HUNK_RE.match(raw)
            if match:
                old_left = int(match.group(2)) if match.group(2) is not None else 1
                new_left = int(match.group(4)) if match.group(4) is not None else 1
                hunks.append(_Hunk(old_start=int(match.group(1)), old_count=old_left, ops=[]))
            # Anything else outside a hunk body is a header line.
            continue
        tag, body = raw[:1], raw[1:]
        if raw in ("\n", "\r\n"):
            tag, body = " ", raw
        if tag == " ":
            old_left -= 1
            new_left -= 1
        elif tag == "-":
            old_left -= 1
        elif tag == "+":
            new_left -= 1
        else:
            raise PatchError(f"Malformed diff line: {raw.rstrip()!r}")
        if old_left < 0 or new_left < 0:
            raise PatchError("Hunk body longer than its header declares")
        hunks[-1].ops.append((tag, body))
    if old_left or new_left:
        raise PatchError("Diff ends inside a hunk")
    if not hunks:
        raise PatchError("Diff contains no hunks")
    return hunks


def _matches(lines: list[str], at: int, expected: list[str]) -> bool:
    if at < 0 or at + len(expected) > len(lines):
        return False
    return all(_strip_eol(lines[at + i]) == _strip_eol(exp) for i, exp in enumerate(expected))


def apply_unified_diff(text: str, diff: str) -> str:
    """Apply a unified diff to *text* and return the patched text.

    Hunks are applied in order. Each hunk must match its context exactly,
    first at the position its header names (adjusted by earlier hunks) and
    otherwise at the first later position where it fits.

    Raises:
        PatchError: A hunk's context does not match.
    """
    lines = text.splitlines(keepends=True)
    offset = 0
    cursor = 0
    for number, hunk in enumerate(_parse_hunks(diff), start=1):
        expected = hunk.old_lines
        if hunk.old_count == 0:
            # Pure insertion: "-N,0" means after line N.
            start = hunk.old_start + offset
        else:
            start = max(hunk.old_start - 1, 0) + offset
        if not _matches(lines, start, expected):
            start = next(
                (
                    pos
                    for pos in range(cursor, len(lines) - len(expected) + 1)
                    if _matches(lines, pos, expected)
                ),
                -1,
            )
            if start < 0:
                raise PatchError(f"Hunk {number} does not apply")

        new_block: list[str] = []
        index = start
        for tag, line in hunk.ops:
            if tag == " ":
                new_block.append(lines[index])  # keep the file's own line ending
                index += 1
            elif tag == "-":
                index += 1
            else:
                new_block.append(line)
        # A line that gained a successor must end with a newline.
        for i, line in enumerate(new_block[:-1]):
            if not line.endswith("\n"):
                new_block[i] = line + "\n"
        if new_block and index < len(lines) and not new_block[-1].endswith("\n"):
            new_block[-1] += "\n"

        if new_block and start > 0 and not lines[start - 1].endswith("\n"):
            lines[start - 1] += "\n"
        lines[start : start + len(expected)] = new_block
        offset += len(new_block) - len(expected)
        cursor = start + len(new_block)
    return "".join(lines)
