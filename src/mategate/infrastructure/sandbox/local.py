"""Local interpreter provider.

Runs code with the host's interpreters inside a throwaway scratch
directory, a stripped environment, and rlimits for memory, CPU time and
file size. It shares the host network namespace, so it reports
``enforces_network_isolation = False`` and is only eligible when network
access is explicitly allowed. Meant for development and tests; production
deployments should prefer container or managed sandboxes.
"""

from __future__ import annotations

import math
import os
import shutil
import sys
import tempfile
import threading
from pathlib import Path

from mategate.domain.execution import (
    LANGUAGES,
    ExecutionLimits,
    ExecutionOutcome,
    ExecutionRequest,
    render_argv,
)
from mategate.infrastructure.sandbox.base import ProviderUnavailableError
from mategate.infrastructure.sandbox.process import run_process

# Sets rlimits in the child, then execs the real command (same pid, so the
# process group kill still reaches it). Kept out of preexec_fn, which is
# unsafe in a threaded server.
_LAUNCHER = """\
import os, resource, sys
mem, cpu, fsize = (int(v) for v in sys.argv[1:4])
if mem > 0:
    resource.setrlimit(resource.RLIMIT_AS, (mem, mem))
resource.setrlimit(resource.RLIMIT_CPU, (cpu, cpu + 1))
resource.setrlimit(resource.RLIMIT_FSIZE, (fsize, fsize))
os.execvp(sys.argv[4], sys.argv[4:])
"""

# Local executables for the first word of a language's argv template.
_LOCAL_BINARIES: dict[str, str] = {
    "python3": sys.executable,
    "node": "node",
    "bash": "bash",
    "ruby": "ruby",
    "php": "php",
}

# V8 reserves far more address space than it uses; RLIMIT_AS would kill it.
_NO_ADDRESS_LIMIT = frozenset({"javascript"})

_SCRATCH_FILE_BYTES = 64 * 1024 * 1024


class SubprocessProvider:
    """Execution on the local host."""

    name = "subprocess"
    enforces_network_isolation = False

    def __init__(self, *, use_rlimits: bool | None = None) -> None:
        self._use_rlimits = os.name == "posix" if use_rlimits is None else use_rlimits

    def _binary(self, language: str) -> str | None:
        spec = LANGUAGES.get(language)
        if spec is None:
            return None
        binary = _LOCAL_BINARIES.get(spec.run[0])
        if binary is None:
            return None
        return binary if shutil.which(binary) else None

    def supported_languages(self) -> frozenset[str]:
        return frozenset(name for name in LANGUAGES if self._binary(name) is not None)

    def is_available(self) -> bool:
        return True

    def _localize(self, argv: list[str]) -> list[str]:
        head = _LOCAL_BINARIES.get(argv[0], argv[0])
        return [head, *argv[1:]]

    def _wrap(self, argv: list[str], language: str, limits: ExecutionLimits) -> list[str]:
        if not self._use_rlimits:
            return argv
        memory = 0 if language in _NO_ADDRESS_LIMIT else limits.memory_mb * 1024 * 1024
        cpu = max(1, math.ceil(limits.timeout_seconds))
        return [
            sys.executable,
            "-c",
            _LAUNCHER,
            str(memory),
            str(cpu),
            str(_SCRATCH_FILE_BYTES),
            *argv,
        ]

    def execute(
        self,
        request: ExecutionRequest,
        limits: ExecutionLimits,
        *,
        deadline: float,
        cancel: threading.Event | None = None,
    ) -> ExecutionOutcome:
        spec = LANGUAGES[request.language]
        if self._binary(request.language) is None:
            raise ProviderUnavailableError(self.name, f"no local runtime for {spec.name}")

        with tempfile.TemporaryDirectory(prefix="mategate-run-") as scratch:
            workdir = Path(scratch)
            source = workdir / spec.filename
            source.write_text(request.code, encoding="utf-8")
            template = request.argv or spec.run
            argv = self._wrap(
                self._localize(render_argv(template, str(source))), spec.name, limits
            )
            env = {
                "PATH": os.environ.get("PATH", os.defpath),
                "HOME": scratch,
                "TMPDIR": scratch,
                "LANG": "C.UTF-8",
                "PYTHONDONTWRITEBYTECODE": "1",
            }
            try:
                result = run_process(
                    argv,
                    deadline=deadline,
                    cancel=cancel,
                    stdin=request.stdin,
                    cwd=workdir,
                    env=env,
                    max_output_bytes=limits.max_output_bytes,
                )
            except FileNotFoundError as exc:
                raise ProviderUnavailableError(self.name, str(exc)) from exc

        return ExecutionOutcome(
            provider=self.name,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.returncode,
            execution_time_ms=int(result.elapsed * 1000),
            timed_out=result.timed_out,
            cancelled=result.cancelled,
            truncated=result.truncated,
        )
