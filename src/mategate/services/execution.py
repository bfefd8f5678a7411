"""Execution orchestrator: the ``code`` domain.

Picks sandbox providers by priority, falls back on transient provider
failures, and normalizes every outcome. Non-zero exits are results, not
errors; only an expired deadline or a cancelled call becomes TIMEOUT.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import structlog

from mategate.domain.commands import CODE_COMMANDS, NoParams, RunCodeParams, ValidateCodeParams
from mategate.domain.envelope import DetailLevel
from mategate.domain.errors import ErrorCode
from mategate.domain.execution import (
    LANGUAGES,
    ExecutionLimits,
    ExecutionOutcome,
    ExecutionRequest,
    ProviderDescriptor,
    normalize_language,
    truncate_output,
)
from mategate.infrastructure.sandbox.base import ProviderUnavailableError, SandboxProvider
from mategate.services.base import CallContext, DomainHandler
from mategate.services.result import ServiceResult, failure, success
from mategate.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from mategate.config.models import ExecutionConfig
    from mategate.plugins.manager import PluginManager

log = structlog.get_logger(__name__)


class _NoProvider(Exception):
    def __init__(self, code: ErrorCode, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.detail = detail


class ExecutionOrchestrator(DomainHandler):
    """Handler for the ``code`` domain."""

    domain = "code"
    commands = CODE_COMMANDS

    def __init__(
        self,
        config: ExecutionConfig,
        providers: Iterable[SandboxProvider],
        *,
        plugins: PluginManager | None = None,
    ) -> None:
        super().__init__(plugins)
        self._config = config
        self._providers: dict[str, SandboxProvider] = {p.name: p for p in providers}
        self._descriptors = self._build_descriptors()

    def _build_descriptors(self) -> list[ProviderDescriptor]:
        """Descriptors for every enabled, configured provider that is installed."""
        descriptors: list[ProviderDescriptor] = []
        for entry in self._config.providers:
            if not entry.enabled:
                continue
            provider = self._providers.get(entry.name)
            if provider is None:
                log.warning("execution.provider_missing", provider=entry.name)
                continue
            languages = provider.supported_languages()
            if entry.languages is not None:
                wanted = {normalize_language(lang) for lang in entry.languages}
                languages = languages & frozenset(lang for lang in wanted if lang)
            descriptors.append(
                ProviderDescriptor(
                    name=entry.name,
                    priority=entry.priority,
                    supported_languages=frozenset(languages),
                    default_timeout_seconds=(
                        entry.default_timeout_seconds or self._config.default_timeout_seconds
                    ),
                )
            )
        descriptors.sort(key=lambda d: (d.priority, d.name))
        return descriptors

    @property
    def descriptors(self) -> list[ProviderDescriptor]:
        return list(self._descriptors)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def eligible(self, language: str) -> list[ProviderDescriptor]:
        """Providers that may run *language*, in priority order.

        Without ``allow_network``, providers that cannot enforce network
        isolation are never eligible.
        """
        chosen: list[ProviderDescriptor] = []
        for descriptor in self._descriptors:
            if not descriptor.supports(language):
                continue
            provider = self._providers[descriptor.name]
            if not self._config.allow_network and not provider.enforces_network_isolation:
                continue
            chosen.append(descriptor)
        return chosen

    def _limits(self, timeout: float) -> ExecutionLimits:
        return ExecutionLimits(
            timeout_seconds=timeout,
            memory_mb=self._config.memory_mb,
            cpu_percent=self._config.cpu_percent,
            pids_limit=self._config.pids_limit,
            allow_network=self._config.allow_network,
            max_output_bytes=self._config.max_output_bytes,
        )

    def _timeout_for(self, requested: float | None, descriptor: ProviderDescriptor) -> float:
        timeout = requested if requested is not None else descriptor.default_timeout_seconds
        return min(timeout, self._config.max_timeout_seconds)

    def _execute(
        self,
        request: ExecutionRequest,
        requested_timeout: float | None,
        ctx: CallContext,
    ) -> ExecutionOutcome:
        """Run *request* through the provider chain.

        Raises:
            _NoProvider: No eligible provider, or every attempt failed transiently.
        """
        chain = self.eligible(request.language)
        if not chain:
            raise _NoProvider(
                ErrorCode.NOT_FOUND, f"Unsupported language: {request.language}"
            )

        attempts: list[dict[str, str]] = []
        for descriptor in chain:
            if ctx.cancelled:
                break
            provider = self._providers[descriptor.name]
            timeout = self._timeout_for(requested_timeout, descriptor)
            deadline = time.monotonic() + timeout
            if ctx.deadline is not None:
                deadline = min(deadline, ctx.deadline)
            try:
                with trace_span(f"provider:{descriptor.name}") as span:
                    outcome = provider.execute(
                        request, self._limits(timeout), deadline=deadline, cancel=ctx.cancel
                    )
                    if span is not None:
                        span.annotate("exitCode", outcome.exit_code)
            except ProviderUnavailableError as exc:
                log.warning(
                    "execution.provider_unavailable",
                    provider=descriptor.name,
                    reason=exc.reason,
                )
                attempts.append({"provider": descriptor.name, "reason": exc.reason})
                continue
            return self._clip(outcome)

        if ctx.cancelled:
            return ExecutionOutcome(provider="", exit_code=-1, cancelled=True)
        raise _NoProvider(
            ErrorCode.PROVIDER_UNAVAILABLE,
            "No execution provider is available",
            attempts=attempts,
        )

    def _clip(self, outcome: ExecutionOutcome) -> ExecutionOutcome:
        limit = self._config.max_output_bytes
        stdout, cut_out = truncate_output(outcome.stdout, limit)
        stderr, cut_err = truncate_output(outcome.stderr, limit)
        if not (cut_out or cut_err or outcome.truncated):
            return outcome
        return replace(outcome, stdout=stdout, stderr=stderr, truncated=True)

    @staticmethod
    def _timeout_failure(op: str, outcome: ExecutionOutcome) -> ServiceResult:
        message = "Execution cancelled" if outcome.cancelled else "Execution timed out"
        return failure(
            op,
            ErrorCode.TIMEOUT,
            message,
            detail={
                "provider": outcome.provider,
                "stdout": outcome.stdout,
                "stderr": outcome.stderr,
                "executionTimeMs": outcome.execution_time_ms,
            },
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @traced
    def handle_run(self, params: RunCodeParams, ctx: CallContext) -> ServiceResult:
        op = "run"
        language = normalize_language(params.language)
        if language is None:
            return failure(op, ErrorCode.NOT_FOUND, f"Unsupported language: {params.language}")

        request = ExecutionRequest(language=language, code=params.code, stdin=params.stdin)
        try:
            outcome = self._execute(request, params.timeout, ctx)
        except _NoProvider as exc:
            return failure(op, exc.code, exc.message, detail=exc.detail)

        if outcome.timed_out or outcome.cancelled:
            log.info(
                "execution.timeout",
                provider=outcome.provider,
                cancelled=outcome.cancelled,
                execution_time_ms=outcome.execution_time_ms,
            )
            return self._timeout_failure(op, outcome)

        log.info(
            "execution.finished",
            provider=outcome.provider,
            language=language,
            exit_code=outcome.exit_code,
            execution_time_ms=outcome.execution_time_ms,
        )
        warnings: list[str] = []
        if outcome.truncated:
            warnings.append(f"Output truncated to {self._config.max_output_bytes} bytes")
        self._dispatch_event(
            "post_code_run",
            {
                "identity": ctx.identity,
                "language": language,
                "provider": outcome.provider,
                "success": outcome.success,
                "exit_code": outcome.exit_code,
                "execution_time_ms": outcome.execution_time_ms,
            },
            warnings,
        )

        data = outcome.to_data()
        if ctx.detail is DetailLevel.MINIMAL:
            data = {k: data[k] for k in ("stdout", "exitCode", "success")}
        return success(op, data, warnings=warnings)

    @traced
    def handle_validate(self, params: ValidateCodeParams, ctx: CallContext) -> ServiceResult:
        op = "validate"
        language = normalize_language(params.language)
        if language is None:
            return failure(op, ErrorCode.NOT_FOUND, f"Unsupported language: {params.language}")

        if language == "python":
            return success(op, _compile_python(params.code))

        spec = LANGUAGES[language]
        if spec.check is None:
            return failure(
                op,
                ErrorCode.INVALID_INPUT,
                f"Syntax checking is not available for {language}",
            )
        request = ExecutionRequest(language=language, code=params.code, argv=spec.check)
        try:
            outcome = self._execute(request, None, ctx)
        except _NoProvider as exc:
            return failure(op, exc.code, exc.message, detail=exc.detail)
        if outcome.timed_out or outcome.cancelled:
            return self._timeout_failure(op, outcome)

        errors = [ln for ln in (outcome.stderr or outcome.stdout).splitlines() if ln.strip()]
        valid = outcome.exit_code == 0
        return success(op, {"valid": valid, "errors": [] if valid else errors})

    def handle_languages(self, params: NoParams, ctx: CallContext) -> ServiceResult:
        items: list[dict[str, Any]] = []
        for name, spec in LANGUAGES.items():
            providers = [d.name for d in self.eligible(name)]
            if not providers:
                continue
            item: dict[str, Any] = {"language": name, "providers": providers}
            if ctx.detail is not DetailLevel.MINIMAL:
                item["aliases"] = list(spec.aliases)
                item["syntaxCheck"] = name == "python" or spec.check is not None
            items.append(item)
        return success("languages", items)

    @traced
    def handle_health(self, params: NoParams, ctx: CallContext) -> ServiceResult:
        items: list[dict[str, Any]] = []
        for descriptor in self._descriptors:
            provider = self._providers[descriptor.name]
            try:
                available = provider.is_available()
            except Exception:
                log.warning("execution.health_check_failed", provider=descriptor.name, exc_info=True)
                available = False
            items.append(
                {
                    "provider": descriptor.name,
                    "priority": descriptor.priority,
                    "available": available,
                    "networkIsolation": provider.enforces_network_isolation,
                    "languages": sorted(descriptor.supported_languages),
                }
            )
        return success("health", items)


def _compile_python(code: str) -> dict[str, Any]:
    """Syntax-check Python source without running it."""
    try:
        compile(code, "<code>", "exec", dont_inherit=True)
    except SyntaxError as exc:
        where = f"line {exc.lineno}" if exc.lineno else "unknown line"
        return {"valid": False, "errors": [f"{where}: {exc.msg}"]}
    except ValueError as exc:
        return {"valid": False, "errors": [str(exc)]}
    return {"valid": True, "errors": []}
