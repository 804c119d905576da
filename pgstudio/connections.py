"""Connection registry holding the live PostgreSQL sessions."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Callable

import asyncpg

from .models import ConnectionDescriptor

LOG = logging.getLogger(__name__)


class ConnectionFailedError(RuntimeError):
    """Raised when the handshake, authentication or network setup fails."""


class NotConnectedError(RuntimeError):
    """Raised when no live session exists for a connection id."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"No active connection with id: {connection_id}")
        self.connection_id = connection_id


class RegistryEventKind(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True, slots=True)
class RegistryEvent:
    """Emitted to subscribers whenever a session is registered or dropped."""

    kind: RegistryEventKind
    server_version: str | None = None
    at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


RegistryListener = Callable[[str, RegistryEvent], None]


class Session:
    """One open channel to a database.

    asyncpg connections cannot run overlapping operations, so every use of the
    channel goes through :meth:`acquire`, which serializes callers.
    """

    def __init__(self, connection_id: str, connection: Any, *, server_version: str | None = None) -> None:
        self.connection_id = connection_id
        self.server_version = server_version
        self.opened_at = datetime.now(tz=timezone.utc)
        self._connection = connection
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        """Hold the channel exclusively for the duration of the block."""

        async with self._lock:
            if self._closed:
                raise NotConnectedError(self.connection_id)
            yield self._connection

    async def fetch(self, query: str, *args: object) -> list[Any]:
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchval(self, query: str, *args: object) -> Any:
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def close(self) -> None:
        """Mark the session unusable and release the channel."""

        if self._closed:
            return
        self._closed = True
        if self._lock.locked():
            # A query is in flight; do not wait for it.
            self._connection.terminate()
            return
        try:
            await self._connection.close()
        except Exception:  # pragma: no cover - best effort cleanup
            LOG.debug("Error while closing session", exc_info=True, extra={"connection_id": self.connection_id})


class ConnectionRegistry:
    """Maps connection ids to live sessions.

    The lock only guards map mutation; network I/O for connecting and closing
    happens outside it so one slow server cannot stall unrelated ids.
    """

    def __init__(self, *, connect_timeout: float = 10.0) -> None:
        self._connect_timeout = connect_timeout
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._listeners: set[RegistryListener] = set()

    async def connect(self, descriptor: ConnectionDescriptor) -> Session:
        """Open a session for ``descriptor.id``, replacing any existing one."""

        connection = await self._open(descriptor)
        server_version = _server_version(connection)
        session = Session(descriptor.id, connection, server_version=server_version)
        async with self._lock:
            previous = self._sessions.get(descriptor.id)
            self._sessions[descriptor.id] = session
        if previous is not None:
            await previous.close()
        LOG.debug(
            "Connected",
            extra={"connection_id": descriptor.id, "target": descriptor.label, "replaced": previous is not None},
        )
        self._emit(descriptor.id, RegistryEvent(RegistryEventKind.CONNECTED, server_version=server_version))
        return session

    async def disconnect(self, connection_id: str) -> None:
        """Drop the session for ``connection_id``; unknown ids are ignored."""

        async with self._lock:
            session = self._sessions.pop(connection_id, None)
        if session is None:
            return
        await session.close()
        LOG.debug("Disconnected", extra={"connection_id": connection_id})
        self._emit(connection_id, RegistryEvent(RegistryEventKind.DISCONNECTED))

    def get(self, connection_id: str) -> Session:
        """Return the live session for ``connection_id``."""

        session = self._sessions.get(connection_id)
        if session is None or session.closed:
            raise NotConnectedError(connection_id)
        return session

    def is_connected(self, connection_id: str) -> bool:
        session = self._sessions.get(connection_id)
        return session is not None and not session.closed

    def connected_ids(self) -> tuple[str, ...]:
        return tuple(self._sessions)

    async def close_all(self) -> None:
        """Disconnect every registered session."""

        for connection_id in self.connected_ids():
            await self.disconnect(connection_id)

    async def test_connection(self, descriptor: ConnectionDescriptor) -> str:
        """Open a throwaway session and return the server's version string."""

        connection = await self._open(descriptor)
        try:
            version = await connection.fetchval("SELECT version()")
        except Exception as exc:
            raise ConnectionFailedError(f"Connection probe failed for '{descriptor.display_name}': {exc}") from exc
        finally:
            try:
                await connection.close()
            except Exception:  # pragma: no cover - best effort cleanup
                pass
        return str(version)

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        """Subscribe to connect/disconnect events; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def _emit(self, connection_id: str, event: RegistryEvent) -> None:
        for listener in tuple(self._listeners):
            listener(connection_id, event)

    async def _open(self, descriptor: ConnectionDescriptor) -> Any:
        kwargs: dict[str, object] = {
            "host": descriptor.host,
            "port": descriptor.port,
            "user": descriptor.user,
            "database": descriptor.database,
            "ssl": descriptor.ssl_mode.value,
            "timeout": self._connect_timeout,
        }
        password = descriptor.password.get_secret_value()
        if password:
            kwargs["password"] = password
        try:
            return await asyncpg.connect(**kwargs)
        except Exception as exc:
            raise ConnectionFailedError(f"Failed to connect to '{descriptor.display_name}': {exc}") from exc


def _server_version(connection: Any) -> str | None:
    getter = getattr(connection, "get_settings", None)
    if getter is None:
        return None
    return getattr(getter(), "server_version", None)


__all__ = [
    "ConnectionFailedError",
    "ConnectionRegistry",
    "NotConnectedError",
    "RegistryEvent",
    "RegistryEventKind",
    "RegistryListener",
    "Session",
]
