"""Request/response envelopes shared by every domain facade.

INVARIANT: ``ok=False`` ⇔ ``error`` present and ``data`` absent;
``ok=True`` ⇒ ``error`` absent. ``count`` is present only when ``data``
is list-shaped.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DetailLevel(StrEnum):
    """How much of a result the caller wants back."""

    MINIMAL = "minimal"
    STANDARD = "standard"
    FULL = "full"


class RequestEnvelope(BaseModel):
    """Inbound command envelope: ``{cmd, detail?, params?}``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    cmd: str = Field(min_length=1)
    detail: DetailLevel = DetailLevel.STANDARD
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("cmd", mode="before")
    @classmethod
    def _strip_cmd(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("detail", mode="before")
    @classmethod
    def _default_unknown_detail(cls, value: Any) -> Any:
        """Unknown or missing detail levels fall back to ``standard``."""
        if isinstance(value, str) and value.lower() in DetailLevel._value2member_map_:
            return value.lower()
        if isinstance(value, DetailLevel):
            return value
        return DetailLevel.STANDARD

    @field_validator("params", mode="before")
    @classmethod
    def _none_params(cls, value: Any) -> Any:
        return {} if value is None else value


class ResponseEnvelope(BaseModel):
    """Outbound envelope: ``{ok, cmd, data?, count?, error?, code?, meta?}``."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    cmd: str
    data: Any = None
    count: int | None = None
    error: str | None = None
    code: str | None = None
    meta: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _check_invariants(self) -> ResponseEnvelope:
        if self.ok:
            if self.error is not None or self.code is not None:
                raise ValueError("successful responses must not carry an error")
        else:
            if self.error is None or self.code is None:
                raise ValueError("failed responses must carry an error and code")
            if self.data is not None or self.count is not None:
                raise ValueError("failed responses must not carry data")
        if self.count is not None and not isinstance(self.data, list):
            raise ValueError("count is only valid for list-shaped data")
        return self

    @classmethod
    def success(
        cls, cmd: str, data: Any = None, *, meta: dict[str, Any] | None = None
    ) -> ResponseEnvelope:
        count = len(data) if isinstance(data, list) else None
        return cls(ok=True, cmd=cmd, data=data, count=count, meta=meta or None)

    @classmethod
    def failure(
        cls, cmd: str, code: str, message: str, *, meta: dict[str, Any] | None = None
    ) -> ResponseEnvelope:
        return cls(ok=False, cmd=cmd, code=str(code), error=message, meta=meta or None)

    def to_wire(self) -> dict[str, Any]:
        """Serialize for JSON transports, omitting absent fields."""
        dumped = self.model_dump(mode="json")
        return {key: value for key, value in dumped.items() if value is not None}
