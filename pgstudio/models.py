"""Shared connection models used across registry, storage and tooling."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, SecretStr


class SslMode(str, Enum):
    """Transport-security policy for a connection."""

    PREFER = "prefer"
    REQUIRE = "require"
    DISABLE = "disable"


class ConnectionDescriptor(BaseModel):
    """Everything needed to open a session; the password never serializes."""

    id: str
    name: str | None = None
    host: str = "localhost"
    port: int = Field(default=5432, ge=1, le=65535)
    database: str
    user: str
    password: SecretStr = Field(default=SecretStr(""), exclude=True)
    ssl_mode: SslMode = SslMode.PREFER
    color: str | None = None

    @property
    def label(self) -> str:
        return f"{self.user}@{self.host}:{self.port}/{self.database}"

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def with_password(self, password: str | SecretStr) -> ConnectionDescriptor:
        """Return a copy carrying the given password."""

        secret = password if isinstance(password, SecretStr) else SecretStr(password)
        return self.model_copy(update={"password": secret})

    def with_database(self, database: str) -> ConnectionDescriptor:
        return self.model_copy(update={"database": database})


class ConnectionRecord(BaseModel):
    """Persisted connection settings (no credential)."""

    id: str
    name: str
    host: str = "localhost"
    port: int = 5432
    database: str
    user: str
    ssl_mode: SslMode = SslMode.PREFER
    color: str | None = None
    created_at: str | None = None

    def to_descriptor(self, password: str = "") -> ConnectionDescriptor:
        return ConnectionDescriptor(
            id=self.id,
            name=self.name,
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=SecretStr(password),
            ssl_mode=self.ssl_mode,
            color=self.color,
        )

    @classmethod
    def from_descriptor(cls, descriptor: ConnectionDescriptor) -> ConnectionRecord:
        return cls(
            id=descriptor.id,
            name=descriptor.display_name,
            host=descriptor.host,
            port=descriptor.port,
            database=descriptor.database,
            user=descriptor.user,
            ssl_mode=descriptor.ssl_mode,
            color=descriptor.color,
        )


__all__ = ["ConnectionDescriptor", "ConnectionRecord", "SslMode"]
