"""Tests for mategate.toml walk-up discovery."""

from pathlib import Path

import pytest

from mategate.config.discovery import CONFIG_ENV_VAR, find_config


def test_finds_in_parent(tmp_path: Path) -> None:
    config = tmp_path / "mategate.toml"
    config.write_text("")
    nested = tmp_path / "x" / "y"
    nested.mkdir(parents=True)
    assert find_config(nested) == config


def test_env_var_wins(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "mategate.toml").write_text("")
    other = tmp_path / "other.toml"
    other.write_text("")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(other))
    assert find_config(tmp_path) == other


def test_env_var_missing_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "nope.toml"))
    assert find_config(tmp_path) is None


def test_env_var_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "mategate.toml"
    config.write_text("")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path))
    assert find_config(tmp_path / "elsewhere") == config


def test_walk_stops_at_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    root = tmp_path.resolve()
    home = root / "home"
    project = home / "work" / "proj"
    project.mkdir(parents=True)
    (root / "mategate.toml").write_text("")
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))
    assert find_config(project) is None

    (home / "mategate.toml").write_text("")
    assert find_config(project) == home / "mategate.toml"


def test_not_found(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path.resolve()))
    assert find_config(tmp_path) is None
