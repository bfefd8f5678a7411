"""Typed parameter models for every ``(domain, cmd)`` pair.

The command tables below are the closed set the dispatcher validates
against. Wire names are camelCase; Python names are snake_case.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mategate.domain.changes import Change, ChangeOperation


class CommandParams(BaseModel):
    """Base for command parameter models. Unknown keys are rejected."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class NoParams(CommandParams):
    pass


# --- files ---


class RoundtripStartParams(CommandParams):
    project_id: str = Field(min_length=1)
    paths: list[str] = Field(min_length=1)


class _ChangeSetParams(CommandParams):
    manifest_id: str = Field(min_length=1)
    changes: list[Change] = Field(min_length=1)
    # Operation for changes that omit one.
    mode: Literal["replace", "patch"]

    @property
    def default_operation(self) -> ChangeOperation:
        return ChangeOperation(self.mode)


class RoundtripPreviewParams(_ChangeSetParams):
    mode: Literal["replace", "patch"] = "replace"


class RoundtripCommitParams(_ChangeSetParams):
    pass


class RoundtripStatusParams(CommandParams):
    manifest_id: str = Field(min_length=1)


class ReadFileParams(CommandParams):
    project_id: str = Field(min_length=1)
    path: str = Field(min_length=1)


# --- code ---


class RunCodeParams(CommandParams):
    language: str = Field(min_length=1)
    code: str
    timeout: float | None = Field(default=None, gt=0)
    stdin: str | None = None


class ValidateCodeParams(CommandParams):
    language: str = Field(min_length=1)
    code: str


# --- records (memories, knowledge, conversations, projects) ---


def _clean_tags(value: Any) -> Any:
    if isinstance(value, list):
        return sorted({str(tag).strip().lower() for tag in value if str(tag).strip()})
    return value


Tags = Annotated[list[str], BeforeValidator(_clean_tags)]


class RecordCreateParams(CommandParams):
    title: str = Field(min_length=1, max_length=500)
    body: str = ""
    tags: Tags = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)


class RecordIdParams(CommandParams):
    id: str = Field(min_length=1)


class RecordListParams(CommandParams):
    tag: str | None = None
    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class RecordUpdateParams(CommandParams):
    id: str = Field(min_length=1)
    title: str | None = Field(default=None, min_length=1, max_length=500)
    body: str | None = None
    tags: Tags | None = None
    data: dict[str, Any] | None = None

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually set."""
        return self.model_dump(exclude={"id"}, exclude_unset=True)


# --- search / hydration ---


class SearchQueryParams(CommandParams):
    text: str = Field(min_length=1)
    domains: list[str] | None = None
    limit: int = Field(default=20, ge=1, le=200)


class HydrationLoadParams(CommandParams):
    domains: list[str] | None = None
    limit: int = Field(default=5, ge=1, le=50)


# --- command tables ---

FILES_COMMANDS: dict[str, type[CommandParams]] = {
    "roundtrip_start": RoundtripStartParams,
    "roundtrip_preview": RoundtripPreviewParams,
    "roundtrip_commit": RoundtripCommitParams,
    "roundtrip_status": RoundtripStatusParams,
    "read": ReadFileParams,
}

CODE_COMMANDS: dict[str, type[CommandParams]] = {
    "run": RunCodeParams,
    "validate": ValidateCodeParams,
    "languages": NoParams,
    "health": NoParams,
}

RECORD_COMMANDS: dict[str, type[CommandParams]] = {
    "create": RecordCreateParams,
    "get": RecordIdParams,
    "list": RecordListParams,
    "update": RecordUpdateParams,
    "delete": RecordIdParams,
}

SEARCH_COMMANDS: dict[str, type[CommandParams]] = {"query": SearchQueryParams}

HYDRATION_COMMANDS: dict[str, type[CommandParams]] = {"load": HydrationLoadParams}

RECORD_DOMAINS: tuple[str, ...] = ("memories", "knowledge", "conversations", "projects")
