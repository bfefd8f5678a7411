"""Tests for command parameter models."""

import pytest
from pydantic import ValidationError

from mategate.domain.changes import ChangeOperation
from mategate.domain.commands import (
    CODE_COMMANDS,
    FILES_COMMANDS,
    RecordCreateParams,
    RecordUpdateParams,
    RoundtripCommitParams,
    RoundtripPreviewParams,
    RoundtripStartParams,
    RunCodeParams,
)


class TestParams:
    def test_camel_case_wire_names(self) -> None:
        params = RoundtripStartParams.model_validate({"projectId": "demo", "paths": ["a"]})
        assert params.project_id == "demo"

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RoundtripStartParams.model_validate({"projectId": "d", "paths": ["a"], "x": 1})

    def test_empty_paths_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RoundtripStartParams.model_validate({"projectId": "d", "paths": []})

    def test_commit_mode(self) -> None:
        params = RoundtripCommitParams.model_validate(
            {"manifestId": "rt_x", "changes": [{"path": "a", "diff": "@@"}], "mode": "patch"}
        )
        assert params.default_operation is ChangeOperation.PATCH

    def test_commit_requires_mode(self) -> None:
        with pytest.raises(ValidationError, match="mode"):
            RoundtripCommitParams.model_validate({"manifestId": "rt_x", "changes": [{"path": "a"}]})

    def test_preview_mode_defaults_to_replace(self) -> None:
        params = RoundtripPreviewParams.model_validate(
            {"manifestId": "rt_x", "changes": [{"path": "a", "content": "x"}]}
        )
        assert params.default_operation is ChangeOperation.REPLACE

    def test_commit_mode_rejects_delete(self) -> None:
        with pytest.raises(ValidationError):
            RoundtripCommitParams.model_validate(
                {"manifestId": "rt_x", "changes": [{"path": "a"}], "mode": "delete"}
            )

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            RunCodeParams.model_validate({"language": "py", "code": "", "timeout": 0})

    def test_tags_cleaned(self) -> None:
        params = RecordCreateParams.model_validate({"title": "t", "tags": ["B", "a ", "b", ""]})
        assert params.tags == ["a", "b"]

    def test_update_changes_only_set_fields(self) -> None:
        params = RecordUpdateParams.model_validate({"id": "mem_x", "title": "new"})
        assert params.changes() == {"title": "new"}


def test_command_tables() -> None:
    assert set(FILES_COMMANDS) == {
        "roundtrip_start",
        "roundtrip_preview",
        "roundtrip_commit",
        "roundtrip_status",
        "read",
    }
    assert set(CODE_COMMANDS) == {"run", "validate", "languages", "health"}
