"""Managed sandbox provider over the E2B REST API.

Lifecycle per run: create a sandbox from the language's template, upload
the source file, start the process, and always delete the sandbox
afterwards. The process request runs on a worker thread so the caller's
deadline and cancel event stay responsive; deleting the sandbox is what
stops a runaway process.

Only failures before the process request leaves the gateway make the
provider unavailable. Once code may have started, a failed request is
reported as the run's outcome so it is never re-run elsewhere.
"""

from __future__ import annotations

import logging
import math
import shlex
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any

import httpx

from mategate.domain.execution import (
    LANGUAGES,
    ExecutionLimits,
    ExecutionOutcome,
    ExecutionRequest,
    render_argv,
)
from mategate.infrastructure.sandbox.base import ProviderUnavailableError

logger = logging.getLogger(__name__)

_HOME = "/home/user"
_POLL_SECONDS = 0.05
# Sandbox lifetime beyond the run timeout, covering create and upload.
_LIFETIME_GRACE_SECONDS = 30


class E2BProvider:
    """Execution in E2B cloud sandboxes."""

    name = "e2b"
    enforces_network_isolation = True

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.e2b.dev/",
        templates: dict[str, str] | None = None,
        request_timeout: float = 30.0,
        sandbox_timeout: int = 60,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self.base_url = base_url
        self._templates = dict(templates or {})
        self._request_timeout = request_timeout
        self._sandbox_timeout = sandbox_timeout
        self._transport = transport
        self._client: httpx.Client | None = None
        self._client_lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(
                    base_url=self.base_url,
                    timeout=self._request_timeout,
                    headers={"X-API-Key": self._api_key or ""},
                    transport=self._transport,
                )
            return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def supported_languages(self) -> frozenset[str]:
        return frozenset(lang for lang in self._templates if lang in LANGUAGES)

    def is_available(self) -> bool:
        if not self._api_key:
            return False
        try:
            response = self._get_client().get("sandboxes")
        except httpx.HTTPError:
            return False
        return response.status_code < 400

    # ------------------------------------------------------------------
    # REST calls
    # ------------------------------------------------------------------

    def _post(self, url: str, payload: dict[str, Any], *, timeout: float | None = None) -> Any:
        kwargs: dict[str, Any] = {"json": payload}
        if timeout is not None:
            kwargs["timeout"] = timeout
        response = self._get_client().post(url, **kwargs)
        response.raise_for_status()
        return response.json() if response.content else {}

    def _create(self, language: str, limits: ExecutionLimits, seconds: int) -> str:
        try:
            body = self._post(
                "sandboxes",
                {
                    "template": self._templates[language],
                    "timeout": max(self._sandbox_timeout, seconds + _LIFETIME_GRACE_SECONDS),
                    "allowInternetAccess": limits.allow_network,
                },
            )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderUnavailableError(self.name, f"unreachable: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise ProviderUnavailableError(
                self.name, f"sandbox create failed ({exc.response.status_code})"
            ) from exc
        sandbox_id = body.get("sandboxId") if isinstance(body, dict) else None
        if not sandbox_id:
            raise ProviderUnavailableError(self.name, "sandbox create returned no sandboxId")
        return str(sandbox_id)

    def _delete(self, sandbox_id: str) -> None:
        try:
            self._get_client().delete(f"sandboxes/{sandbox_id}")
        except httpx.HTTPError:
            logger.warning("Failed to delete E2B sandbox %s", sandbox_id, exc_info=True)

    def _run_process(
        self, sandbox_id: str, argv: list[str], stdin: str | None, seconds: int
    ) -> Any:
        payload: dict[str, Any] = {"cmd": shlex.join(argv), "timeout": seconds}
        if stdin is not None:
            payload["stdin"] = stdin
        return self._post(
            f"sandboxes/{sandbox_id}/process",
            payload,
            timeout=seconds + self._request_timeout,
        )

    def _await(
        self,
        future: Future[Any],
        deadline: float,
        cancel: threading.Event | None,
    ) -> tuple[Any, bool, bool]:
        """Wait for the process call. Returns ``(body, timed_out, cancelled)``.

        Raises:
            ProviderUnavailableError: The request never reached the API.
        """
        while True:
            if cancel is not None and cancel.is_set():
                return None, False, True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None, True, False
            try:
                return future.result(timeout=min(remaining, _POLL_SECONDS)), False, False
            except FutureTimeout:
                continue
            except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
                raise ProviderUnavailableError(self.name, f"unreachable: {exc}") from exc
            except httpx.TimeoutException:
                return None, True, False
            except httpx.HTTPError as exc:
                logger.warning("E2B process request failed mid-run: %s", exc)
                failed = {"stderr": f"e2b process request failed: {exc}", "exitCode": -1}
                return failed, False, False

    # ------------------------------------------------------------------
    # Provider contract
    # ------------------------------------------------------------------

    def execute(
        self,
        request: ExecutionRequest,
        limits: ExecutionLimits,
        *,
        deadline: float,
        cancel: threading.Event | None = None,
    ) -> ExecutionOutcome:
        if not self._api_key:
            raise ProviderUnavailableError(self.name, "no API key configured")
        if request.language not in self._templates:
            raise ProviderUnavailableError(self.name, f"no template for {request.language}")

        spec = LANGUAGES[request.language]
        path = f"{_HOME}/{spec.filename}"
        argv = render_argv(request.argv or spec.run, path)
        seconds = max(1, math.ceil(limits.timeout_seconds))

        start = time.monotonic()
        sandbox_id = self._create(request.language, limits, seconds)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="e2b-process")
        deleted = False
        try:
            try:
                self._post(
                    f"sandboxes/{sandbox_id}/filesystem", {"path": path, "content": request.code}
                )
            except httpx.HTTPError as exc:
                raise ProviderUnavailableError(self.name, f"upload failed: {exc}") from exc

            future = pool.submit(self._run_process, sandbox_id, argv, request.stdin, seconds)
            body, timed_out, cancelled = self._await(future, deadline, cancel)
            if timed_out or cancelled:
                # Killing the sandbox ends the in-flight request too.
                self._delete(sandbox_id)
                deleted = True
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
            if not deleted:
                self._delete(sandbox_id)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if timed_out or cancelled:
            return ExecutionOutcome(
                provider=self.name,
                exit_code=-1,
                execution_time_ms=elapsed_ms,
                timed_out=timed_out,
                cancelled=cancelled,
            )
        body = body if isinstance(body, dict) else {}
        return ExecutionOutcome(
            provider=self.name,
            stdout=str(body.get("stdout", "")),
            stderr=str(body.get("stderr", "")),
            exit_code=int(body.get("exitCode", -1)),
            execution_time_ms=elapsed_ms,
            timed_out=bool(body.get("timedOut", False)),
        )
