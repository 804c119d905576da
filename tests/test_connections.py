"""Tests for the connection registry and sessions."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from pgstudio.connections import (
    ConnectionFailedError,
    ConnectionRegistry,
    NotConnectedError,
    RegistryEventKind,
)
from pgstudio.models import ConnectionDescriptor


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _FakeConnection:
    def __init__(self, version: str = "16.2") -> None:
        self.version = version
        self.closed = False
        self.terminated = False
        self.queries: list[str] = []

    def get_settings(self) -> SimpleNamespace:
        return SimpleNamespace(server_version=self.version)

    async def fetch(self, query: str, *args: object) -> list[dict[str, Any]]:
        self.queries.append(query)
        await asyncio.sleep(0)
        return [{"query": query, "args": args}]

    async def fetchval(self, query: str, *args: object) -> str:
        self.queries.append(query)
        return f"PostgreSQL {self.version}"

    async def close(self) -> None:
        self.closed = True

    def terminate(self) -> None:
        self.terminated = True


def _descriptor(**overrides: Any) -> ConnectionDescriptor:
    values: dict[str, Any] = {"id": "local", "database": "appdb", "user": "postgres"}
    values.update(overrides)
    return ConnectionDescriptor(**values)


@pytest.mark.anyio
async def test_connect_then_get_returns_live_session(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = _FakeConnection()
    calls: list[dict[str, Any]] = []

    async def _connect(**kwargs: Any) -> _FakeConnection:
        calls.append(kwargs)
        return connection

    monkeypatch.setattr("pgstudio.connections.asyncpg.connect", _connect)
    registry = ConnectionRegistry(connect_timeout=5)

    session = await registry.connect(_descriptor(password="secret"))

    assert registry.get("local") is session
    assert session.server_version == "16.2"
    assert calls[0]["database"] == "appdb"
    assert calls[0]["password"] == "secret"
    assert calls[0]["ssl"] == "prefer"
    assert calls[0]["timeout"] == 5


@pytest.mark.anyio
async def test_empty_password_is_not_sent(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []

    async def _connect(**kwargs: Any) -> _FakeConnection:
        calls.append(kwargs)
        return _FakeConnection()

    monkeypatch.setattr("pgstudio.connections.asyncpg.connect", _connect)

    await ConnectionRegistry().connect(_descriptor())

    assert "password" not in calls[0]


@pytest.mark.anyio
async def test_disconnect_removes_session(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = _FakeConnection()

    async def _connect(**kwargs: Any) -> _FakeConnection:
        return connection

    monkeypatch.setattr("pgstudio.connections.asyncpg.connect", _connect)
    registry = ConnectionRegistry()
    await registry.connect(_descriptor())

    await registry.disconnect("local")

    assert connection.closed is True
    assert registry.is_connected("local") is False
    with pytest.raises(NotConnectedError, match="No active connection with id: local"):
        registry.get("local")


@pytest.mark.anyio
async def test_disconnect_unknown_id_is_a_noop() -> None:
    registry = ConnectionRegistry()

    await registry.disconnect("missing")

    assert registry.connected_ids() == ()


@pytest.mark.anyio
async def test_reconnect_supersedes_previous_session(monkeypatch: pytest.MonkeyPatch) -> None:
    connections = [_FakeConnection("15.0"), _FakeConnection("16.0")]

    async def _connect(**kwargs: Any) -> _FakeConnection:
        return connections.pop(0)

    monkeypatch.setattr("pgstudio.connections.asyncpg.connect", _connect)
    registry = ConnectionRegistry()
    first = await registry.connect(_descriptor())

    second = await registry.connect(_descriptor())

    assert registry.get("local") is second
    assert first.closed is True
    with pytest.raises(NotConnectedError):
        await first.fetch("SELECT 1")


@pytest.mark.anyio
async def test_failed_connect_keeps_existing_session(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _connect(**kwargs: Any) -> _FakeConnection:
        return _FakeConnection()

    monkeypatch.setattr("pgstudio.connections.asyncpg.connect", _connect)
    registry = ConnectionRegistry()
    session = await registry.connect(_descriptor())

    async def _broken(**kwargs: Any) -> None:
        raise OSError("connection refused")

    monkeypatch.setattr("pgstudio.connections.asyncpg.connect", _broken)

    with pytest.raises(ConnectionFailedError, match="connection refused"):
        await registry.connect(_descriptor())
    assert registry.get("local") is session


@pytest.mark.anyio
async def test_session_serializes_concurrent_callers(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = _FakeConnection()
    active = 0
    peak = 0

    async def _fetch(query: str, *args: object) -> list[str]:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return [query]

    connection.fetch = _fetch  # type: ignore[method-assign]

    async def _connect(**kwargs: Any) -> _FakeConnection:
        return connection

    monkeypatch.setattr("pgstudio.connections.asyncpg.connect", _connect)
    session = await ConnectionRegistry().connect(_descriptor())

    results = await asyncio.gather(*(session.fetch(f"SELECT {n}") for n in range(5)))

    assert peak == 1
    assert results == [[f"SELECT {n}"] for n in range(5)]


@pytest.mark.anyio
async def test_slow_connect_does_not_block_other_ids(monkeypatch: pytest.MonkeyPatch) -> None:
    release = asyncio.Event()

    async def _connect(**kwargs: Any) -> _FakeConnection:
        if kwargs["database"] == "slow":
            await release.wait()
        return _FakeConnection()

    monkeypatch.setattr("pgstudio.connections.asyncpg.connect", _connect)
    registry = ConnectionRegistry()
    slow = asyncio.ensure_future(registry.connect(_descriptor(id="slow", database="slow")))
    await asyncio.sleep(0)

    fast = await registry.connect(_descriptor(id="fast"))
    await registry.disconnect("fast")

    assert fast.closed is True
    assert not slow.done()
    release.set()
    await slow
    assert registry.is_connected("slow")


@pytest.mark.anyio
async def test_test_connection_returns_version_without_registering(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = _FakeConnection("16.1")

    async def _connect(**kwargs: Any) -> _FakeConnection:
        return connection

    monkeypatch.setattr("pgstudio.connections.asyncpg.connect", _connect)
    registry = ConnectionRegistry()

    version = await registry.test_connection(_descriptor())

    assert version == "PostgreSQL 16.1"
    assert connection.queries == ["SELECT version()"]
    assert connection.closed is True
    assert registry.connected_ids() == ()


@pytest.mark.anyio
async def test_subscribers_receive_events(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _connect(**kwargs: Any) -> _FakeConnection:
        return _FakeConnection("16.3")

    monkeypatch.setattr("pgstudio.connections.asyncpg.connect", _connect)
    registry = ConnectionRegistry()
    events: list[tuple[str, RegistryEventKind, str | None]] = []
    unsubscribe = registry.subscribe(lambda cid, event: events.append((cid, event.kind, event.server_version)))

    await registry.connect(_descriptor())
    await registry.disconnect("local")
    unsubscribe()
    await registry.connect(_descriptor())

    assert events == [
        ("local", RegistryEventKind.CONNECTED, "16.3"),
        ("local", RegistryEventKind.DISCONNECTED, None),
    ]


@pytest.mark.anyio
async def test_close_all_disconnects_everything(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _connect(**kwargs: Any) -> _FakeConnection:
        return _FakeConnection()

    monkeypatch.setattr("pgstudio.connections.asyncpg.connect", _connect)
    registry = ConnectionRegistry()
    await registry.connect(_descriptor(id="a"))
    await registry.connect(_descriptor(id="b"))

    await registry.close_all()

    assert registry.connected_ids() == ()


def test_descriptor_never_serializes_password() -> None:
    descriptor = _descriptor(password="hunter2")

    assert "password" not in descriptor.model_dump()
    assert "hunter2" not in repr(descriptor)
    assert descriptor.label == "postgres@localhost:5432/appdb"
