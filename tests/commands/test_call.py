"""Tests for the call command."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from mategate.cli import cli


@pytest.mark.usefixtures("_isolated_gate")
class TestCallCommand:
    def test_create_record_human(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(
            cli, ["call", "memories", "create", "-p", "title=Deploy notes"]
        )
        assert result.exit_code == 0, result.output
        assert "OK" in result.output
        assert "create" in result.output
        assert "Deploy notes" in result.output

    def test_json_output_is_wire_envelope(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(
            cli,
            ["--json", "call", "memories", "create", "--params", '{"title": "t", "tags": ["ops"]}'],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["ok"] is True
        assert data["cmd"] == "create"
        assert data["data"]["tags"] == ["ops"]
        assert data["data"]["id"].startswith("mem_")
        assert "error" not in data

    def test_pairs_parse_json_values(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(
            cli, ["--json", "call", "memories", "create", "-p", "title=t", "-p", 'tags=["a","b"]']
        )
        assert json.loads(result.output)["data"]["tags"] == ["a", "b"]

    def test_params_from_file(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "req.json").write_text('{"title": "from file"}')
        result = cli_runner.invoke(
            cli, ["--json", "call", "knowledge", "create", "--params", "@req.json"]
        )
        assert json.loads(result.output)["data"]["title"] == "from file"

    def test_unknown_domain_exits_1(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["call", "nope", "list"])
        assert result.exit_code == 1
        assert "ERROR" in result.output
        assert "NOT_FOUND" in result.output

    def test_failure_json(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "call", "memories", "create"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["ok"] is False
        assert data["code"] == "INVALID_INPUT"
        assert "title" in data["meta"]["fields"]
        assert "data" not in data

    def test_identity_isolates_records(self, cli_runner: CliRunner) -> None:
        created = cli_runner.invoke(
            cli, ["--json", "--user", "alice", "call", "memories", "create", "-p", "title=x"]
        )
        record_id = json.loads(created.output)["data"]["id"]

        mine = cli_runner.invoke(
            cli, ["--json", "--user", "alice", "call", "memories", "get", "-p", f"id={record_id}"]
        )
        assert mine.exit_code == 0
        theirs = cli_runner.invoke(
            cli, ["--json", "--user", "bob", "call", "memories", "get", "-p", f"id={record_id}"]
        )
        assert theirs.exit_code == 1
        assert json.loads(theirs.output)["code"] == "NOT_FOUND"

    def test_bad_params_json(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["call", "memories", "create", "--params", "{nope"])
        assert result.exit_code == 2
        assert "invalid JSON" in result.output

    def test_bad_pair(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["call", "memories", "create", "-p", "title"])
        assert result.exit_code == 2
        assert "key=value" in result.output

    def test_disabled_domain(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        config = tmp_path / "mategate.toml"
        config.write_text(config.read_text() + "\n[domains]\nmemories = false\n")
        result = cli_runner.invoke(cli, ["--json", "call", "memories", "list"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "DISABLED"
