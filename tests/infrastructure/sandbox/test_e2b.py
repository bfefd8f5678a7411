"""Tests for the E2B provider against a mocked REST API."""

import json
import threading
import time
from collections.abc import Callable

import httpx
import pytest

from mategate.domain.execution import ExecutionLimits, ExecutionRequest
from mategate.infrastructure.sandbox.base import ProviderUnavailableError
from mategate.infrastructure.sandbox.e2b import E2BProvider

LIMITS = ExecutionLimits(timeout_seconds=5)


class FakeE2B:
    """Records requests; answers like the sandbox API."""

    def __init__(self, *, process: Callable[[httpx.Request], httpx.Response] | None = None):
        self.requests: list[tuple[str, str, dict]] = []
        self.create_status = 201
        self._process = process

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        self.requests.append((request.method, request.url.path, body))
        path = request.url.path
        if request.method == "POST" and path == "/sandboxes":
            if self.create_status >= 400:
                return httpx.Response(self.create_status, json={"message": "quota"})
            return httpx.Response(201, json={"sandboxId": "sb1"})
        if path == "/sandboxes/sb1/filesystem":
            return httpx.Response(200, json={})
        if path == "/sandboxes/sb1/process":
            if self._process is not None:
                return self._process(request)
            return httpx.Response(200, json={"stdout": "hi\n", "stderr": "", "exitCode": 0})
        if request.method == "DELETE":
            return httpx.Response(204)
        if request.method == "GET" and path == "/sandboxes":
            return httpx.Response(200, json=[])
        return httpx.Response(404)

    def paths(self, method: str) -> list[str]:
        return [p for m, p, _ in self.requests if m == method]


def _provider(api: FakeE2B, **kwargs) -> E2BProvider:
    kwargs.setdefault("api_key", "key")
    return E2BProvider(
        templates={"python": "Python3"}, transport=httpx.MockTransport(api), **kwargs
    )


class TestE2BProvider:
    def test_full_lifecycle(self) -> None:
        api = FakeE2B()
        provider = _provider(api)
        outcome = provider.execute(
            ExecutionRequest(language="python", code="print('hi')"),
            LIMITS,
            deadline=time.monotonic() + 5,
        )
        provider.close()
        assert outcome.stdout == "hi\n"
        assert outcome.success
        assert api.paths("POST") == [
            "/sandboxes",
            "/sandboxes/sb1/filesystem",
            "/sandboxes/sb1/process",
        ]
        assert api.paths("DELETE") == ["/sandboxes/sb1"]
        create = api.requests[0][2]
        assert create["template"] == "Python3"
        assert create["allowInternetAccess"] is False
        upload = api.requests[1][2]
        assert upload == {"path": "/home/user/main.py", "content": "print('hi')"}
        assert api.requests[2][2]["cmd"] == "python3 /home/user/main.py"

    def test_no_api_key(self) -> None:
        provider = _provider(FakeE2B(), api_key=None)
        assert provider.is_available() is False
        with pytest.raises(ProviderUnavailableError, match="API key"):
            provider.execute(
                ExecutionRequest(language="python", code=""), LIMITS, deadline=time.monotonic() + 5
            )

    def test_unsupported_language(self) -> None:
        provider = _provider(FakeE2B())
        assert provider.supported_languages() == frozenset({"python"})
        with pytest.raises(ProviderUnavailableError, match="template"):
            provider.execute(
                ExecutionRequest(language="ruby", code=""), LIMITS, deadline=time.monotonic() + 5
            )

    def test_create_failure_is_unavailable(self) -> None:
        api = FakeE2B()
        api.create_status = 503
        with pytest.raises(ProviderUnavailableError, match="503"):
            _provider(api).execute(
                ExecutionRequest(language="python", code=""), LIMITS, deadline=time.monotonic() + 5
            )
        assert api.paths("DELETE") == []

    def test_unreachable_is_unavailable(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        provider = E2BProvider(
            api_key="key", templates={"python": "Python3"}, transport=httpx.MockTransport(refuse)
        )
        assert provider.is_available() is False
        with pytest.raises(ProviderUnavailableError, match="unreachable"):
            provider.execute(
                ExecutionRequest(language="python", code=""), LIMITS, deadline=time.monotonic() + 5
            )

    def test_deadline_deletes_sandbox(self) -> None:
        release = threading.Event()

        def slow(request: httpx.Request) -> httpx.Response:
            release.wait(5)
            return httpx.Response(200, json={"stdout": "", "exitCode": 0})

        api = FakeE2B(process=slow)
        try:
            start = time.monotonic()
            outcome = _provider(api).execute(
                ExecutionRequest(language="python", code="while True: pass"),
                LIMITS,
                deadline=start + 0.3,
            )
        finally:
            release.set()
        assert outcome.timed_out
        assert outcome.exit_code == -1
        assert time.monotonic() - start < 3
        assert api.paths("DELETE") == ["/sandboxes/sb1"]

    def test_cancel(self) -> None:
        release = threading.Event()
        cancel = threading.Event()

        def slow(request: httpx.Request) -> httpx.Response:
            cancel.set()
            release.wait(5)
            return httpx.Response(200, json={})

        try:
            outcome = _provider(FakeE2B(process=slow)).execute(
                ExecutionRequest(language="python", code=""),
                LIMITS,
                deadline=time.monotonic() + 5,
                cancel=cancel,
            )
        finally:
            release.set()
        assert outcome.cancelled
        assert not outcome.timed_out


class TestSandboxLifetime:
    @pytest.mark.parametrize(("timeout", "lifetime"), [(5, 60), (100, 130)])
    def test_lifetime_covers_run(self, timeout: float, lifetime: int) -> None:
        api = FakeE2B()
        _provider(api).execute(
            ExecutionRequest(language="python", code=""),
            ExecutionLimits(timeout_seconds=timeout),
            deadline=time.monotonic() + 5,
        )
        assert api.requests[0][2]["timeout"] == lifetime
        assert api.requests[2][2]["timeout"] == timeout


class TestMidRunFailures:
    def _execute(self, api: FakeE2B):  # type: ignore[no-untyped-def]
        return _provider(api).execute(
            ExecutionRequest(language="python", code="print(1)"),
            LIMITS,
            deadline=time.monotonic() + 5,
        )

    def test_error_status_is_an_outcome(self) -> None:
        api = FakeE2B(process=lambda request: httpx.Response(502, json={"message": "gone"}))
        outcome = self._execute(api)
        assert outcome.exit_code == -1
        assert not outcome.success
        assert not outcome.timed_out
        assert "502" in outcome.stderr
        assert api.paths("DELETE") == ["/sandboxes/sb1"]

    def test_dropped_connection_is_an_outcome(self) -> None:
        def drop(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadError("connection reset", request=request)

        outcome = self._execute(FakeE2B(process=drop))
        assert outcome.exit_code == -1
        assert "connection reset" in outcome.stderr

    def test_unsent_request_is_unavailable(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        api = FakeE2B(process=refuse)
        with pytest.raises(ProviderUnavailableError, match="unreachable"):
            self._execute(api)
        assert api.paths("DELETE") == ["/sandboxes/sb1"]
