"""Tests for root CLI help, version and --examples."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from mategate import __version__
from mategate.cli import cli


class TestRootGroup:
    def test_no_subcommand_prints_help(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "command-dispatch gateway" in result.output

    def test_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    @pytest.mark.parametrize("name", ["call", "code", "domains", "roundtrip", "serve"])
    def test_commands_registered(self, cli_runner: CliRunner, name: str) -> None:
        result = cli_runner.invoke(cli, ["--help"])
        assert name in result.output

    def test_invalid_toml_is_a_usage_error(self, cli_runner: CliRunner, tmp_path) -> None:
        config = tmp_path / "mategate.toml"
        config.write_text("[gateway\n")
        result = cli_runner.invoke(cli, ["--config", str(config), "domains"])
        assert result.exit_code == 1
        assert "Invalid TOML" in result.output


class TestExamples:
    @pytest.mark.parametrize(
        ("args", "expected"),
        [
            (["call", "--examples"], "mategate call memories create"),
            (["code", "--examples"], "mategate code run python"),
            (["roundtrip", "--examples"], "mategate roundtrip start webapp"),
            (["domains", "--examples"], "mategate --json domains"),
            (["serve", "--examples"], "streamable-http"),
        ],
    )
    def test_examples_flag(self, cli_runner: CliRunner, args: list[str], expected: str) -> None:
        result = cli_runner.invoke(cli, args)
        assert result.exit_code == 0
        assert "Examples for" in result.output
        assert expected in result.output

    def test_examples_not_in_help_body(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["call", "--help"])
        assert "--examples" in result.output
        assert "Deploy notes" not in result.output
