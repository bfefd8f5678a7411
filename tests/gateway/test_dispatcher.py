"""Tests for request dispatch: check order, error mapping and masking."""

from typing import Any

import pytest

from mategate.config.models import RateLimitConfig
from mategate.domain.commands import CommandParams, NoParams
from mategate.domain.envelope import RequestEnvelope
from mategate.gateway.dispatcher import Dispatcher
from mategate.gateway.ratelimit import RateLimiter
from mategate.gateway.registry import DomainRegistry
from mategate.services.base import CallContext, DomainHandler
from mategate.services.result import ServiceResult, failure, success


class EchoParams(CommandParams):
    text: str
    times: int = 1


class _Echo(DomainHandler):
    domain = "echo"
    commands = {"say": EchoParams, "crash": NoParams, "leak": NoParams, "list": NoParams}

    def __init__(self) -> None:
        super().__init__()
        self.seen: list[CallContext] = []

    def handle_say(self, params: EchoParams, ctx: CallContext) -> ServiceResult:
        self.seen.append(ctx)
        return success("say", {"text": params.text * params.times}, warnings=["echoed"])

    def handle_crash(self, params: NoParams, ctx: CallContext) -> ServiceResult:
        raise RuntimeError("secret database password")

    def handle_leak(self, params: NoParams, ctx: CallContext) -> ServiceResult:
        return failure(
            "leak",
            "INTERNAL",
            "stack trace with /etc/secret",
            detail={"traceback": "...", "state": "aborted"},
        )

    def handle_list(self, params: NoParams, ctx: CallContext) -> ServiceResult:
        return success("list", [1, 2, 3])


@pytest.fixture
def handler() -> _Echo:
    return _Echo()


def _dispatcher(handler: _Echo, *, limit: int = 100, enabled: bool = True) -> Dispatcher:
    registry = DomainRegistry()
    registry.register("echo", handler, enabled=enabled)
    registry.freeze()
    limiter = RateLimiter(RateLimitConfig(limits={"default": limit}))
    return Dispatcher(registry, limiter)


def _say(dispatcher: Dispatcher, **envelope: Any) -> Any:
    envelope.setdefault("cmd", "say")
    envelope.setdefault("params", {"text": "hi"})
    return dispatcher.dispatch("echo", envelope, "alice")


class TestHappyPath:
    def test_success(self, handler: _Echo) -> None:
        resp = _say(_dispatcher(handler), params={"text": "ab", "times": 2})
        assert resp.ok
        assert resp.cmd == "say"
        assert resp.data == {"text": "abab"}
        assert resp.meta == {"warnings": ["echoed"]}
        assert handler.seen[0].identity == "alice"
        assert len(handler.seen[0].correlation_id) == 32

    def test_typed_envelope_and_detail(self, handler: _Echo) -> None:
        dispatcher = _dispatcher(handler)
        resp = dispatcher.dispatch(
            "echo",
            RequestEnvelope(cmd="say", detail="full", params={"text": "x"}),
            "alice",
        )
        assert resp.ok
        assert str(handler.seen[0].detail) == "full"

    def test_list_data_carries_count(self, handler: _Echo) -> None:
        resp = _say(_dispatcher(handler), cmd="list", params={})
        assert resp.count == 3

    def test_unknown_detail_falls_back(self, handler: _Echo) -> None:
        _say(_dispatcher(handler), detail="verbose")
        assert str(handler.seen[0].detail) == "standard"

    def test_timeout_sets_deadline(self, handler: _Echo) -> None:
        _dispatcher(handler).dispatch(
            "echo", {"cmd": "say", "params": {"text": "x"}}, "alice", timeout=5
        )
        remaining = handler.seen[0].remaining()
        assert remaining is not None and 0 < remaining <= 5


class TestRejections:
    @pytest.mark.parametrize("envelope", [[], "say", None, 42])
    def test_non_object_envelope(self, handler: _Echo, envelope: Any) -> None:
        resp = _dispatcher(handler).dispatch("echo", envelope, "alice")
        assert resp.code == "INVALID_INPUT"
        assert resp.cmd == ""

    def test_missing_cmd(self, handler: _Echo) -> None:
        resp = _dispatcher(handler).dispatch("echo", {"params": {}}, "alice")
        assert resp.code == "INVALID_INPUT"
        assert resp.meta["fields"] == ["cmd"]

    def test_unknown_domain(self, handler: _Echo) -> None:
        resp = _dispatcher(handler).dispatch("nope", {"cmd": "say"}, "alice")
        assert resp.code == "NOT_FOUND"
        assert resp.cmd == "say"

    def test_disabled_domain(self, handler: _Echo) -> None:
        resp = _say(_dispatcher(handler, enabled=False))
        assert resp.code == "DISABLED"
        assert handler.seen == []

    def test_unknown_command(self, handler: _Echo) -> None:
        resp = _say(_dispatcher(handler), cmd="shout")
        assert resp.code == "NOT_FOUND"
        assert "shout" in resp.error

    @pytest.mark.parametrize(
        ("params", "fields"),
        [
            ({}, ["text"]),
            ({"text": "x", "times": "many"}, ["times"]),
            ({"text": "x", "volume": 11}, ["volume"]),
        ],
    )
    def test_invalid_params(
        self, handler: _Echo, params: dict[str, Any], fields: list[str]
    ) -> None:
        resp = _say(_dispatcher(handler), params=params)
        assert resp.code == "INVALID_INPUT"
        assert resp.meta["fields"] == fields
        assert handler.seen == []

    def test_rate_limited(self, handler: _Echo) -> None:
        dispatcher = _dispatcher(handler, limit=2)
        assert _say(dispatcher).ok
        assert _say(dispatcher).ok
        resp = _say(dispatcher)
        assert resp.code == "RATE_LIMITED"
        assert resp.meta["retryAfter"] >= 1
        other = dispatcher.dispatch("echo", {"cmd": "say", "params": {"text": "x"}}, "bob")
        assert other.ok

    def test_rejected_before_limit_do_not_consume(self, handler: _Echo) -> None:
        dispatcher = _dispatcher(handler, limit=1)
        for _ in range(3):
            _say(dispatcher, cmd="shout")
        assert _say(dispatcher).ok


class TestMasking:
    def test_unexpected_exception(self, handler: _Echo) -> None:
        resp = _say(_dispatcher(handler), cmd="crash", params={})
        assert resp.code == "INTERNAL"
        assert resp.error == "Internal error"
        assert "secret" not in str(resp.to_wire())
        assert len(resp.meta["correlationId"]) == 32

    def test_internal_failure_result(self, handler: _Echo) -> None:
        resp = _say(_dispatcher(handler), cmd="leak", params={})
        assert resp.error == "Internal error"
        assert resp.meta["state"] == "aborted"
        assert "traceback" not in resp.meta
        assert "correlationId" in resp.meta

    def test_correlation_ids_differ(self, handler: _Echo) -> None:
        dispatcher = _dispatcher(handler)
        first = _say(dispatcher, cmd="crash", params={})
        second = _say(dispatcher, cmd="crash", params={})
        assert first.meta["correlationId"] != second.meta["correlationId"]
