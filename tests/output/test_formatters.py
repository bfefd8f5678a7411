"""Tests for JSON and Rich response formatting."""

from __future__ import annotations

import json

from mategate.domain.envelope import ResponseEnvelope
from mategate.output.formatters import OutputSettings, format_response

_JSON = OutputSettings(json_output=True)


class TestJsonMode:
    def test_success_is_wire_envelope(self) -> None:
        envelope = ResponseEnvelope.success("list", [{"id": "mem_1"}])
        parsed = json.loads(format_response(envelope, settings=_JSON))
        assert parsed == {"ok": True, "cmd": "list", "data": [{"id": "mem_1"}], "count": 1}

    def test_failure_omits_data(self) -> None:
        envelope = ResponseEnvelope.failure(
            "run", "RATE_LIMITED", "Rate limit exceeded", meta={"retryAfter": 12}
        )
        parsed = json.loads(format_response(envelope, settings=_JSON))
        assert parsed == {
            "ok": False,
            "cmd": "run",
            "error": "Rate limit exceeded",
            "code": "RATE_LIMITED",
            "meta": {"retryAfter": 12},
        }


class TestHumanMode:
    def test_generic_dict(self) -> None:
        out = format_response(ResponseEnvelope.success("get", {"id": "kno_1", "title": "T"}))
        assert out.startswith("OK")
        assert "get" in out
        assert "kno_1" in out
        assert "title:" in out

    def test_list_renders_table(self) -> None:
        envelope = ResponseEnvelope.success(
            "list", [{"id": "mem_1", "title": "one"}, {"id": "mem_2", "title": "two"}]
        )
        out = format_response(envelope)
        assert "id" in out
        assert "mem_1" in out
        assert "two" in out

    def test_error_shows_code_and_conflicts(self) -> None:
        envelope = ResponseEnvelope.failure(
            "roundtrip_commit",
            "CONFLICT",
            "Files changed since roundtrip_start: b.txt",
            meta={"conflicts": ["b.txt"]},
        )
        out = format_response(envelope)
        assert out.startswith("ERROR")
        assert "CONFLICT" in out
        assert "conflicts:" in out
        assert '["b.txt"]' in out

    def test_error_hides_telemetry_unless_verbose(self) -> None:
        telemetry = {"name": "handle_run", "durationMs": 1.5, "children": []}
        envelope = ResponseEnvelope.failure(
            "run", "TIMEOUT", "Execution timed out", meta={"telemetry": telemetry}
        )
        assert "handle_run" not in format_response(envelope)
        verbose = format_response(envelope, settings=OutputSettings(verbose=True))
        assert "handle_run" in verbose

    def test_run_output_sections(self) -> None:
        envelope = ResponseEnvelope.success(
            "run",
            {
                "provider": "docker",
                "exitCode": 1,
                "stdout": "partial\n",
                "stderr": "Traceback\n",
                "success": False,
            },
        )
        out = format_response(envelope)
        assert "stdout:" in out
        assert "partial" in out
        assert "stderr:" in out
        assert "Traceback" in out

    def test_validate_lists_errors(self) -> None:
        envelope = ResponseEnvelope.success(
            "validate", {"valid": False, "errors": ["line 1: invalid syntax"]}
        )
        out = format_response(envelope)
        assert "valid:" in out
        assert "line 1: invalid syntax" in out

    def test_verbose_success_shows_meta(self) -> None:
        envelope = ResponseEnvelope.success(
            "run",
            {"stdout": ""},
            meta={"telemetry": {"name": "handle_run", "durationMs": 250.0, "children": []}},
        )
        out = format_response(envelope, settings=OutputSettings(verbose=True))
        assert "meta:" in out
        assert "handle_run" in out
