"""Dispatcher: the single entry point from transports into domain handlers.

Order of checks for every call:

1. parse the request envelope
2. resolve the domain
3. refuse disabled domains
4. check the command exists in the domain's table
5. consume one unit of the caller's rate-limit budget
6. validate ``params`` against the command's parameter model
7. invoke the handler and map its ServiceResult onto the response

INVARIANT: Handlers never see a request that failed steps 1-6, and
callers never see the text of an unexpected exception.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from mategate.domain.envelope import RequestEnvelope, ResponseEnvelope
from mategate.domain.errors import INTERNAL_MESSAGE, ErrorCode, public_detail
from mategate.gateway.ratelimit import RateLimiter
from mategate.gateway.registry import DomainRegistry
from mategate.services.base import CallContext
from mategate.services.result import ServiceResult

log = structlog.get_logger(__name__)


def _error_fields(exc: ValidationError) -> list[str]:
    """Dotted wire names of the offending fields, in first-seen order."""
    fields: list[str] = []
    for err in exc.errors():
        name = ".".join(str(part) for part in err["loc"]) or "params"
        if name not in fields:
            fields.append(name)
    return fields


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        where = ".".join(str(part) for part in err["loc"]) or "params"
        parts.append(f"{where}: {err['msg']}")
    return "; ".join(parts)


class Dispatcher:
    """Routes request envelopes to registered domain handlers."""

    def __init__(self, registry: DomainRegistry, limiter: RateLimiter) -> None:
        self._registry = registry
        self._limiter = limiter

    @property
    def registry(self) -> DomainRegistry:
        return self._registry

    def dispatch(
        self,
        domain: str,
        envelope: RequestEnvelope | Mapping[str, Any],
        identity: str,
        *,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> ResponseEnvelope:
        """Run one command and return its response envelope. Never raises."""
        correlation_id = uuid.uuid4().hex
        if isinstance(envelope, RequestEnvelope):
            raw_cmd: Any = envelope.cmd
        elif isinstance(envelope, Mapping):
            raw_cmd = envelope.get("cmd")
        else:
            raw_cmd = None
        cmd = raw_cmd.strip() if isinstance(raw_cmd, str) else ""

        with structlog.contextvars.bound_contextvars(
            correlation_id=correlation_id,
            domain=domain,
            cmd=cmd,
            identity=identity,
        ):
            try:
                return self._dispatch(
                    domain,
                    envelope,
                    identity,
                    correlation_id=correlation_id,
                    cancel=cancel,
                    timeout=timeout,
                )
            except Exception:
                log.exception("dispatch.internal_error")
                return ResponseEnvelope.failure(
                    cmd,
                    ErrorCode.INTERNAL,
                    INTERNAL_MESSAGE,
                    meta={"correlationId": correlation_id},
                )

    def _dispatch(
        self,
        domain: str,
        envelope: RequestEnvelope | Mapping[str, Any],
        identity: str,
        *,
        correlation_id: str,
        cancel: threading.Event | None,
        timeout: float | None,
    ) -> ResponseEnvelope:
        # 1. envelope
        if isinstance(envelope, RequestEnvelope):
            request = envelope
        elif not isinstance(envelope, Mapping):
            return ResponseEnvelope.failure(
                "", ErrorCode.INVALID_INPUT, "Malformed request: expected an object"
            )
        else:
            try:
                request = RequestEnvelope.model_validate(dict(envelope))
            except ValidationError as exc:
                cmd = envelope.get("cmd")
                return ResponseEnvelope.failure(
                    cmd if isinstance(cmd, str) else "",
                    ErrorCode.INVALID_INPUT,
                    f"Malformed request: {_describe(exc)}",
                    meta={"fields": _error_fields(exc)},
                )
        cmd = request.cmd

        # 2-4. domain and command
        handler = self._registry.resolve(domain)
        if handler is None:
            return ResponseEnvelope.failure(cmd, ErrorCode.NOT_FOUND, f"Unknown domain: {domain}")
        if not self._registry.is_enabled(domain):
            return ResponseEnvelope.failure(
                cmd, ErrorCode.DISABLED, f"Domain is disabled: {domain}"
            )
        params_model = handler.commands.get(cmd)
        if params_model is None:
            return ResponseEnvelope.failure(
                cmd, ErrorCode.NOT_FOUND, f"Unknown command for {domain}: {cmd}"
            )

        # 5. rate limit
        decision = self._limiter.try_consume(identity, self._limiter.class_for(domain))
        if not decision.allowed:
            log.info("dispatch.rate_limited", retry_after=decision.retry_after)
            return ResponseEnvelope.failure(
                cmd,
                ErrorCode.RATE_LIMITED,
                "Rate limit exceeded",
                meta={"retryAfter": decision.retry_after},
            )

        # 6. params
        try:
            params = params_model.model_validate(request.params)
        except ValidationError as exc:
            return ResponseEnvelope.failure(
                cmd,
                ErrorCode.INVALID_INPUT,
                f"Invalid params: {_describe(exc)}",
                meta={"fields": _error_fields(exc)},
            )

        # 7. handler
        ctx = CallContext(
            identity=identity,
            detail=request.detail,
            correlation_id=correlation_id,
            cancel=cancel or threading.Event(),
            deadline=time.monotonic() + timeout if timeout is not None else None,
        )
        log.debug("dispatch.invoke", detail=str(request.detail))
        result = handler.handle(cmd, params, ctx)
        return self._to_envelope(cmd, result, ctx)

    @staticmethod
    def _to_envelope(cmd: str, result: ServiceResult, ctx: CallContext) -> ResponseEnvelope:
        meta: dict[str, Any] = {}
        if result.warnings:
            meta["warnings"] = list(result.warnings)
        if result.meta and "telemetry" in result.meta:
            meta["telemetry"] = result.meta["telemetry"]

        if result.ok:
            return ResponseEnvelope.success(cmd, result.data, meta=meta)

        error = result.error
        if error is None:
            raise ValueError(f"failed ServiceResult for {cmd} carries no error")
        meta.update(public_detail(error.detail))
        message = error.message
        if error.code == ErrorCode.INTERNAL:
            log.error("dispatch.handler_internal", message=error.message)
            message = INTERNAL_MESSAGE
            meta["correlationId"] = ctx.correlation_id
        return ResponseEnvelope.failure(cmd, error.code, message, meta=meta)
