"""Run a local child process under a deadline and a cancel event.

The child starts in its own session (process group) so that on timeout or
cancellation the whole group, grandchildren included, is killed.

stdout and stderr are drained by reader threads into capped buffers: once
a stream reaches ``max_output_bytes`` further bytes are read and dropped,
so a chatty child can neither block on a full pipe nor grow the gateway's
memory.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)

# How often the wait loop re-checks the cancel event.
_POLL_SECONDS = 0.05
# Upper bound for draining pipes after the process has exited or been killed.
_DRAIN_SECONDS = 5.0
_CHUNK = 64 * 1024


@dataclass
class ProcessResult:
    stdout: str
    stderr: str
    returncode: int
    elapsed: float
    timed_out: bool = False
    cancelled: bool = False
    truncated: bool = False


class _CappedReader(threading.Thread):
    """Reads a pipe to EOF, keeping at most *limit* bytes."""

    def __init__(self, stream: IO[bytes], limit: int | None) -> None:
        super().__init__(daemon=True)
        self._stream = stream
        self._limit = limit
        self.data = bytearray()
        self.truncated = False

    def run(self) -> None:
        try:
            while chunk := self._stream.read1(_CHUNK):  # type: ignore[attr-defined]
                if self._limit is None:
                    self.data += chunk
                    continue
                room = self._limit - len(self.data)
                if len(chunk) > room:
                    self.truncated = True
                if room > 0:
                    self.data += chunk[:room]
        except (OSError, ValueError):
            # Pipe closed under us during teardown.
            pass

    def text(self) -> str:
        return bytes(self.data).decode("utf-8", errors="replace")


def _feed_stdin(stream: IO[bytes], payload: bytes) -> None:
    try:
        stream.write(payload)
    except (BrokenPipeError, OSError):
        # The child exited or closed stdin without reading it all.
        pass
    finally:
        try:
            stream.close()
        except OSError:
            pass


def kill_process_group(proc: subprocess.Popen[bytes]) -> None:
    """SIGKILL *proc* and everything in its process group."""
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    else:
        proc.kill()


def run_process(
    argv: list[str],
    *,
    deadline: float,
    cancel: threading.Event | None = None,
    stdin: str | None = None,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    max_output_bytes: int | None = None,
) -> ProcessResult:
    """Run *argv* to completion, deadline, or cancellation.

    At most *max_output_bytes* of each stream are kept; ``truncated`` is
    set when anything was dropped.

    Raises:
        FileNotFoundError: The executable does not exist.
    """
    start = time.monotonic()
    proc = subprocess.Popen(
        argv,
        stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        cwd=cwd,
        env=env,
        start_new_session=True,
    )
    assert proc.stdout is not None and proc.stderr is not None
    readers = [
        _CappedReader(proc.stdout, max_output_bytes),
        _CappedReader(proc.stderr, max_output_bytes),
    ]
    for reader in readers:
        reader.start()
    if stdin is not None:
        assert proc.stdin is not None
        threading.Thread(
            target=_feed_stdin, args=(proc.stdin, stdin.encode("utf-8")), daemon=True
        ).start()

    timed_out = cancelled = False
    try:
        while True:
            if cancel is not None and cancel.is_set():
                cancelled = True
                break
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                timed_out = True
                break
            try:
                proc.wait(timeout=min(remaining, _POLL_SECONDS))
                break
            except subprocess.TimeoutExpired:
                continue
        # Also reaps background children left behind after a normal exit.
        kill_process_group(proc)
        proc.wait()
    except BaseException:
        kill_process_group(proc)
        proc.wait()
        raise
    finally:
        for reader in readers:
            reader.join(_DRAIN_SECONDS)
            if reader.is_alive():
                logger.warning("Output of process %s did not drain after exit", proc.pid)

    out, err = readers
    return ProcessResult(
        stdout=out.text(),
        stderr=err.text(),
        returncode=proc.returncode,
        elapsed=time.monotonic() - start,
        timed_out=timed_out,
        cancelled=cancelled,
        truncated=out.truncated or err.truncated,
    )
