"""Tests for the code command group."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from mategate.cli import cli


@pytest.mark.usefixtures("_isolated_gate")
class TestCodeRun:
    def test_inline_code(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "code", "run", "python", "--code", "print(1)"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)["data"]
        assert data["provider"] == "primary"
        assert data["stdout"] == "print(1)"
        assert data["exitCode"] == 0

    def test_source_from_file(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "job.sh").write_text("echo hi")
        result = cli_runner.invoke(cli, ["--json", "code", "run", "bash", "@job.sh"])
        assert json.loads(result.output)["data"]["stdout"] == "echo hi"

    def test_source_from_stdin(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "code", "run", "python", "-"], input="x = 1")
        assert json.loads(result.output)["data"]["stdout"] == "x = 1"

    def test_human_output_shows_stdout(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["code", "run", "python", "--code", "hello there"])
        assert result.exit_code == 0
        assert "provider:" in result.output
        assert "primary" in result.output
        assert "stdout:" in result.output
        assert "hello there" in result.output

    def test_missing_source(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["code", "run", "python"])
        assert result.exit_code == 2
        assert "--code" in result.output

    def test_unsupported_language(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "code", "run", "cobol", "--code", "x"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "NOT_FOUND"


@pytest.mark.usefixtures("_isolated_gate")
class TestCodeInfo:
    def test_validate_python(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "code", "validate", "python", "--code", "def f(:"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)["data"]
        assert data["valid"] is False
        assert data["errors"]

    def test_languages(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "code", "languages"])
        assert result.exit_code == 0
        languages = {item["language"] for item in json.loads(result.output)["data"]}
        assert "python" in languages

    def test_health(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "code", "health"])
        data = json.loads(result.output)["data"]
        assert [item["provider"] for item in data] == ["primary"]
