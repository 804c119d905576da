"""Tests for AppConfig helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from pgstudio import config as config_module
from pgstudio.config import AppConfig, load_config


def test_defaults_cover_fixed_and_bundled_tool_dirs() -> None:
    config = AppConfig()

    assert Path("/usr/local/bin") in config.tool_search_dirs
    assert Path("/opt/homebrew/bin") in config.tool_search_dirs
    assert Path("/Applications/Postgres.app/Contents/Versions") in config.bundled_tool_roots
    assert config.connect_timeout == 10.0
    assert config.ai_max_tokens == 4096


def test_load_config_returns_defaults_when_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")

    result = load_config()

    assert result == AppConfig()


def test_load_config_reads_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        f"""
storage_path = "{tmp_path / 'store.db'}"
connect_timeout = 3.5
tool_search_dirs = ["{tmp_path / 'bin'}"]
bundled_tool_roots = []
ai_request_timeout = 15
ai_max_tokens = 512
"""
    )
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result.storage_path == tmp_path / "store.db"
    assert result.connect_timeout == 3.5
    assert result.tool_search_dirs == [tmp_path / "bin"]
    assert result.bundled_tool_roots == []
    assert result.ai_request_timeout == 15
    assert result.ai_max_tokens == 512


def test_load_config_handles_toml_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("connect_timeout = [unterminated")
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result == AppConfig()


def test_load_config_ignores_invalid_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("connect_timeout = -1\n")
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result == AppConfig()


def test_with_storage_path_returns_copy(tmp_path: Path) -> None:
    config = AppConfig()

    updated = config.with_storage_path(tmp_path / "other.db")

    assert updated.storage_path == tmp_path / "other.db"
    assert config.storage_path != updated.storage_path
