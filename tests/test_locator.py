"""Tests for client binary discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from pgstudio.locator import BinaryLocator, version_sort_key


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _tool(path: Path, body: str = "exit 0", executable: bool = True) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(0o755 if executable else 0o644)
    return path


def test_fixed_dirs_win_over_bundled_installs(tmp_path: Path) -> None:
    fixed = _tool(tmp_path / "bin" / "pg_dump")
    _tool(tmp_path / "Versions" / "16" / "bin" / "pg_dump")
    locator = BinaryLocator([tmp_path / "bin"], [tmp_path / "Versions"], use_path=False)

    assert locator.locate("pg_dump") == fixed


def test_bundled_versions_are_searched_newest_first(tmp_path: Path) -> None:
    root = tmp_path / "Versions"
    _tool(root / "9.6" / "bin" / "pg_dump")
    newest = _tool(root / "16" / "bin" / "pg_dump")
    _tool(root / "13" / "bin" / "pg_dump")
    _tool(root / "latest" / "bin" / "pg_dump")
    locator = BinaryLocator([], [root], use_path=False)

    assert locator.locate("pg_dump") == newest


def test_version_sort_key_orders_numerically() -> None:
    names = ["9.6", "latest", "16", "10", "16.1"]

    assert sorted(names, key=version_sort_key) == ["16.1", "16", "10", "9.6", "latest"]


def test_non_executable_matches_are_skipped(tmp_path: Path) -> None:
    _tool(tmp_path / "bin" / "psql", executable=False)
    locator = BinaryLocator([tmp_path / "bin"], [], use_path=False)

    assert locator.locate("psql") is None


def test_missing_root_directories_are_ignored(tmp_path: Path) -> None:
    locator = BinaryLocator([tmp_path / "nope"], [tmp_path / "also-nope"], use_path=False)

    assert locator.locate("pg_restore") is None


def test_falls_back_to_path_lookup(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    on_path = _tool(tmp_path / "path-bin" / "pg_restore")
    monkeypatch.setenv("PATH", str(tmp_path / "path-bin"))
    locator = BinaryLocator([tmp_path / "empty"], [])

    assert locator.locate("pg_restore") == on_path


@pytest.mark.anyio
async def test_tool_version_reads_stdout(tmp_path: Path) -> None:
    tool = _tool(tmp_path / "pg_dump", 'echo "pg_dump (PostgreSQL) 16.2"')

    version = await BinaryLocator([], [], use_path=False).tool_version(tool)

    assert version == "pg_dump (PostgreSQL) 16.2"


@pytest.mark.anyio
async def test_tool_version_returns_none_on_failure(tmp_path: Path) -> None:
    tool = _tool(tmp_path / "pg_dump", "exit 3")
    locator = BinaryLocator([], [], use_path=False)

    assert await locator.tool_version(tool) is None
    assert await locator.tool_version(tmp_path / "missing") is None
