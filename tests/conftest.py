"""Shared pytest fixtures and test helpers for mategate tests."""

from __future__ import annotations

import threading
import time
from collections.abc import Generator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner
from sqlalchemy.engine import Engine

from mategate.config.settings import GateSettings
from mategate.domain.execution import (
    ExecutionLimits,
    ExecutionOutcome,
    ExecutionRequest,
)
from mategate.gateway.bootstrap import Gateway, build_gateway
from mategate.infrastructure.database.engine import init_database
from mategate.infrastructure.sandbox.base import ProviderUnavailableError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer MATEGATE_* variables out of every test."""
    import os

    for key in list(os.environ):
        if key.startswith("MATEGATE_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def db_engine(tmp_path: Path) -> Generator[Engine]:
    """Initialized SQLite engine with all tables created."""
    engine = init_database(tmp_path / ".mategate" / "mategate.db")
    try:
        yield engine
    finally:
        engine.dispose()


class FakeClock:
    """Settable UTC clock for TTL tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class FakeProvider:
    """Scripted sandbox provider.

    ``behaviour`` is ``"ok"`` (echo the code to stdout), ``"unavailable"``
    (raise ProviderUnavailableError), or ``"hang"`` (wait for the deadline
    or cancel, then report it).
    """

    name: str
    behaviour: str = "ok"
    languages: frozenset[str] = frozenset({"python", "javascript", "bash"})
    enforces_network_isolation: bool = True
    exit_code: int = 0
    calls: list[ExecutionRequest] = field(default_factory=list)
    limits: list[ExecutionLimits] = field(default_factory=list)

    def supported_languages(self) -> frozenset[str]:
        return self.languages

    def is_available(self) -> bool:
        return self.behaviour != "unavailable"

    def execute(
        self,
        request: ExecutionRequest,
        limits: ExecutionLimits,
        *,
        deadline: float,
        cancel: threading.Event | None = None,
    ) -> ExecutionOutcome:
        self.calls.append(request)
        self.limits.append(limits)
        if self.behaviour == "unavailable":
            raise ProviderUnavailableError(self.name, "daemon not running")
        if self.behaviour == "hang":
            while time.monotonic() < deadline:
                if cancel is not None and cancel.is_set():
                    return ExecutionOutcome(
                        provider=self.name, stdout="partial", exit_code=-1, cancelled=True
                    )
                time.sleep(0.01)
            return ExecutionOutcome(
                provider=self.name, stdout="partial", exit_code=-1, timed_out=True
            )
        return ExecutionOutcome(
            provider=self.name,
            stdout=request.code,
            stderr="" if self.exit_code == 0 else "boom",
            exit_code=self.exit_code,
            execution_time_ms=5,
        )


def make_settings(root: Path, **overrides: Any) -> GateSettings:
    """Settings rooted at *root* with fake-friendly provider config."""
    overrides.setdefault(
        "execution",
        {
            "providers": [
                {"name": "primary", "priority": 10},
                {"name": "secondary", "priority": 20},
            ]
        },
    )
    return GateSettings.from_cli(data_root=root, **overrides)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """A project ``demo`` with three small text files."""
    root = tmp_path / "projects" / "demo"
    root.mkdir(parents=True)
    (root / "a.txt").write_text("alpha\n")
    (root / "b.txt").write_text("bravo\n")
    (root / "c.txt").write_text("charlie\n")
    return root


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway(tmp_path: Path, project_root: Path, clock: FakeClock) -> Generator[Gateway]:
    """Gateway over tmp_path with two fake providers and no plugin discovery."""
    settings = make_settings(tmp_path, plugins={"enabled": False})
    gw = build_gateway(
        settings,
        providers=[FakeProvider("primary"), FakeProvider("secondary")],
        clock=clock,
    )
    try:
        yield gw
    finally:
        gw.close()


def call(gw: Gateway, domain: str, cmd: str, identity: str = "alice", **params: Any) -> Any:
    """Dispatch and return the response envelope."""
    detail = params.pop("detail", None)
    envelope: dict[str, Any] = {"cmd": cmd, "params": params}
    if detail is not None:
        envelope["detail"] = detail
    return gw.dispatch(domain, envelope, identity)


_CLI_CONFIG = """\
[plugins]
enabled = false

[[execution.providers]]
name = "primary"
priority = 10
"""


@pytest.fixture
def _isolated_gate(
    tmp_path: Path, project_root: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None]:
    """Run CLI commands against tmp_path with one fake sandbox provider.

    Use via ``@pytest.mark.usefixtures("_isolated_gate")`` on command test
    classes.
    """
    import logging

    import structlog

    (tmp_path / "mategate.toml").write_text(_CLI_CONFIG)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        "mategate.gateway.bootstrap.default_providers",
        lambda settings: [FakeProvider("primary")],
    )
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()
    logging.getLogger("mategate").setLevel(logging.NOTSET)
