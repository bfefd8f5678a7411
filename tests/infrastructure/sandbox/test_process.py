"""Tests for deadline- and cancel-bounded child processes."""

import os
import sys
import threading
import time
from pathlib import Path

import pytest

from mategate.infrastructure.sandbox.process import run_process

pytestmark = pytest.mark.skipif(os.name != "posix", reason="process groups are POSIX-only")


def _gone(pid: int) -> bool:
    """True once *pid* no longer runs (reaped, or a zombie awaiting reaping)."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return True
    stat = Path(f"/proc/{pid}/stat")
    if stat.exists():
        return stat.read_text().rsplit(")", 1)[1].split()[0] == "Z"
    return False


def _wait_gone(pid: int, seconds: float = 3.0) -> bool:
    stop = time.monotonic() + seconds
    while time.monotonic() < stop:
        if _gone(pid):
            return True
        time.sleep(0.05)
    return _gone(pid)


# Spawns a grandchild that sleeps, prints its pid, then waits on it.
_SPAWN = (
    "import subprocess, sys\n"
    "p = subprocess.Popen(['sleep', '10'])\n"
    "print(p.pid, flush=True)\n"
    "p.wait()\n"
)


class TestRunProcess:
    def test_completes(self) -> None:
        result = run_process(
            [sys.executable, "-c", "print('hi')"], deadline=time.monotonic() + 10
        )
        assert result.stdout == "hi\n"
        assert result.returncode == 0
        assert not result.timed_out

    def test_stdin(self) -> None:
        result = run_process(
            [sys.executable, "-c", "import sys; print(sys.stdin.read().upper())"],
            deadline=time.monotonic() + 10,
            stdin="abc",
        )
        assert result.stdout.strip() == "ABC"

    def test_deadline_kills_whole_group(self) -> None:
        start = time.monotonic()
        result = run_process([sys.executable, "-c", _SPAWN], deadline=start + 1.0)
        assert result.timed_out
        assert time.monotonic() - start < 5
        grandchild = int(result.stdout.split()[0])
        assert _wait_gone(grandchild)

    def test_cancel(self) -> None:
        cancel = threading.Event()
        threading.Timer(0.2, cancel.set).start()
        start = time.monotonic()
        result = run_process(
            [sys.executable, "-c", "import time; time.sleep(10)"],
            deadline=start + 30,
            cancel=cancel,
        )
        assert result.cancelled
        assert not result.timed_out
        assert time.monotonic() - start < 5

    def test_background_children_die_on_exit(self) -> None:
        result = run_process(
            ["sh", "-c", "sleep 30 >/dev/null 2>&1 & echo $!"], deadline=time.monotonic() + 10
        )
        assert result.returncode == 0
        assert _wait_gone(int(result.stdout.strip()))

    def test_missing_executable(self) -> None:
        with pytest.raises(FileNotFoundError):
            run_process(["definitely-not-a-binary-xyz"], deadline=time.monotonic() + 5)


class TestOutputCap:
    def test_flood_is_capped(self) -> None:
        flood = "import sys\nwhile True:\n    sys.stdout.write('x' * 65536)\n"
        result = run_process(
            [sys.executable, "-c", flood],
            deadline=time.monotonic() + 1.5,
            max_output_bytes=10_000,
        )
        assert result.timed_out
        assert result.truncated
        assert result.stdout == "x" * 10_000

    def test_flood_that_exits_is_capped(self) -> None:
        flood = "import sys\nsys.stdout.write('y' * 5_000_000)\nsys.stderr.write('e' * 10)\n"
        result = run_process(
            [sys.executable, "-c", flood],
            deadline=time.monotonic() + 10,
            max_output_bytes=1024,
        )
        assert result.returncode == 0
        assert result.truncated
        assert len(result.stdout) == 1024
        assert result.stderr == "e" * 10

    def test_small_output_not_truncated(self) -> None:
        result = run_process(
            [sys.executable, "-c", "print('ok')"],
            deadline=time.monotonic() + 10,
            max_output_bytes=1024,
        )
        assert result.stdout == "ok\n"
        assert not result.truncated
