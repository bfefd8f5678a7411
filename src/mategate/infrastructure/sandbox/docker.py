"""Container provider driven through the ``docker`` CLI.

Each run gets a fresh ``--rm`` container with no network (unless allowed),
a read-only root filesystem, all capabilities dropped, memory/CPU/pids
ceilings, and the scratch directory mounted read-only at ``/code``. The
in-container ``timeout`` bounds the user code; the outer deadline adds a
grace period for container start-up, and a named ``docker kill`` tears
the container down if that is exceeded or the call is cancelled.
"""

from __future__ import annotations

import logging
import math
import secrets
import shutil
import subprocess
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

logger = logging.getLogger(__name__)

# ``docker run`` exits 125 when the daemon or the run itself failed.
_DOCKER_RUN_FAILED = 125
# ``timeout -s KILL`` exits 137; GNU ``timeout`` without -s exits 124.
_TIMEOUT_EXIT_CODES = frozenset({124, 137})
_VERSION_CHECK_TIMEOUT = 5.0


class DockerProvider:
    """Execution in throwaway containers."""

    name = "docker"
    enforces_network_isolation = True

    def __init__(
        self,
        *,
        binary: str = "docker",
        images: dict[str, str] | None = None,
        startup_grace_seconds: float = 10.0,
    ) -> None:
        self._binary = binary
        self._images = images or {}
        self._grace = startup_grace_seconds

    def supported_languages(self) -> frozenset[str]:
        return frozenset(LANGUAGES)

    def image_for(self, language: str) -> str:
        return self._images.get(language, LANGUAGES[language].image)

    def is_available(self) -> bool:
        if shutil.which(self._binary) is None:
            return False
        try:
            version = subprocess.run(
                [self._binary, "version", "--format", "{{.Server.Version}}"],
                capture_output=True,
                timeout=_VERSION_CHECK_TIMEOUT,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        return version.returncode == 0

    def build_command(
        self,
        request: ExecutionRequest,
        limits: ExecutionLimits,
        *,
        workdir: Path,
        container: str,
    ) -> list[str]:
        """The full ``docker run`` argv for *request*."""
        spec = LANGUAGES[request.language]
        argv = [
            self._binary,
            "run",
            "--rm",
            "--name",
            container,
            f"--memory={limits.memory_mb}m",
            f"--cpus={limits.cpu_percent / 100:.2f}",
            f"--pids-limit={limits.pids_limit}",
        ]
        if request.stdin is not None:
            argv.append("-i")
        if not limits.allow_network:
            argv.append("--network=none")
        argv += [
            "--read-only",
            "--tmpfs",
            "/tmp:rw,exec,size=64m",
            "--cap-drop=ALL",
            "--security-opt=no-new-privileges",
            "-v",
            f"{workdir}:/code:ro",
            "-w",
            "/code",
            self.image_for(spec.name),
            "timeout",
            "-s",
            "KILL",
            str(max(1, math.ceil(limits.timeout_seconds))),
        ]
        argv += render_argv(request.argv or spec.run, f"/code/{spec.filename}")
        return argv

    def _kill(self, container: str) -> None:
        try:
            subprocess.run(
                [self._binary, "kill", container],
                capture_output=True,
                timeout=_VERSION_CHECK_TIMEOUT,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired):
            logger.warning("Failed to kill container %s", container, exc_info=True)

    def execute(
        self,
        request: ExecutionRequest,
        limits: ExecutionLimits,
        *,
        deadline: float,
        cancel: threading.Event | None = None,
    ) -> ExecutionOutcome:
        spec = LANGUAGES[request.language]
        container = f"mategate-{secrets.token_hex(6)}"
        with tempfile.TemporaryDirectory(prefix="mategate-docker-") as scratch:
            workdir = Path(scratch)
            (workdir / spec.filename).write_text(request.code, encoding="utf-8")
            # World-readable so the container user can read the mount.
            workdir.chmod(0o755)
            (workdir / spec.filename).chmod(0o644)
            argv = self.build_command(request, limits, workdir=workdir, container=container)
            try:
                result = run_process(
                    argv,
                    deadline=deadline + self._grace,
                    cancel=cancel,
                    stdin=request.stdin,
                    max_output_bytes=limits.max_output_bytes,
                )
            except FileNotFoundError as exc:
                raise ProviderUnavailableError(self.name, f"{self._binary} not found") from exc
            except BaseException:
                self._kill(container)
                raise
            if result.timed_out or result.cancelled:
                self._kill(container)

        if result.returncode == _DOCKER_RUN_FAILED and not result.timed_out:
            lines = result.stderr.strip().splitlines()
            raise ProviderUnavailableError(self.name, lines[-1] if lines else "docker run failed")
        timed_out = result.timed_out or (
            result.returncode in _TIMEOUT_EXIT_CODES
            and result.elapsed >= limits.timeout_seconds
        )
        return ExecutionOutcome(
            provider=self.name,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.returncode,
            execution_time_ms=int(result.elapsed * 1000),
            timed_out=timed_out,
            cancelled=result.cancelled,
            truncated=result.truncated,
        )
