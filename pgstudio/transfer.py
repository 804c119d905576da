"""Dump, restore and direct transfer through the PostgreSQL client tools.

Every public operation returns an outcome object instead of raising for
tool problems: a missing binary or a failed spawn is reported with
``started=False``, a tool that ran and failed with ``success=False``.
Passwords reach the child processes through ``PGPASSWORD`` in their own
environment and never through argv.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping, Protocol, Sequence

from .locator import BinaryLocator
from .models import ConnectionRecord

LOG = logging.getLogger(__name__)

ARCHIVE_MAGIC = b"PGDMP"
FATAL_MARKER = "ERROR"


class ToolNotFoundError(RuntimeError):
    """Raised when a required client binary cannot be located."""

    def __init__(self, tool: str, hint: str | None = None) -> None:
        message = f"{tool} not found on system."
        message += f" {hint}" if hint else f" Install the PostgreSQL client tools or add {tool} to PATH."
        super().__init__(message)
        self.tool = tool


class ProcessError(RuntimeError):
    """Raised when a client tool cannot be spawned."""

    def __init__(self, message: str, *, stderr: str = "", exit_code: int | None = None) -> None:
        super().__init__(message)
        self.stderr = stderr
        self.exit_code = exit_code


class DumpFormat(str, Enum):
    PLAIN = "plain"
    CUSTOM = "custom"
    DIRECTORY = "directory"


class ArchiveKind(str, Enum):
    """What a restore input turned out to be."""

    PLAIN = "plain"
    CUSTOM = "custom"
    DIRECTORY = "directory"


class CredentialSource(Protocol):
    async def get_connection_record(self, connection_id: str) -> ConnectionRecord: ...

    async def get_password(self, connection_id: str) -> str: ...


@dataclass(frozen=True, slots=True)
class ToolOutcome:
    success: bool
    error: str | None = None
    warnings: str | None = None
    exit_code: int | None = None
    started: bool = True

    @property
    def partial(self) -> bool:
        """Succeeded, but the tool reported problems worth showing."""

        return self.success and bool(self.warnings)


@dataclass(frozen=True, slots=True)
class DumpOutcome(ToolOutcome):
    file_path: str = ""
    size_bytes: int = 0


@dataclass(frozen=True, slots=True)
class RestoreOutcome(ToolOutcome):
    archive_kind: ArchiveKind | None = None


@dataclass(frozen=True, slots=True)
class TransferOutcome(ToolOutcome):
    dump_stderr: str | None = None


@dataclass(frozen=True, slots=True)
class ToolsStatus:
    pg_dump: str | None
    pg_restore: str | None
    psql: str | None
    version: str | None


@dataclass(frozen=True, slots=True)
class _Target:
    record: ConnectionRecord
    password: str


def format_flag(dump_format: str) -> str:
    if dump_format == DumpFormat.PLAIN.value:
        return "p"
    if dump_format == DumpFormat.DIRECTORY.value:
        return "d"
    return "c"


def connection_args(record: ConnectionRecord) -> list[str]:
    return ["-h", record.host, "-p", str(record.port), "-U", record.user, "-d", record.database]


def table_args(tables: Iterable[str] | None) -> list[str]:
    args: list[str] = []
    for table in tables or ():
        args.extend(["-t", table])
    return args


def dump_args(
    record: ConnectionRecord,
    dump_format: str,
    output_path: str | Path,
    *,
    schema_only: bool = False,
    tables: Sequence[str] | None = None,
) -> list[str]:
    args = [*connection_args(record), "-F", format_flag(dump_format), "-f", str(output_path)]
    if schema_only:
        args.append("--schema-only")
    return args + table_args(tables)


def restore_args(
    record: ConnectionRecord,
    file_path: str | Path,
    *,
    clean: bool = False,
    schema_only: bool = False,
) -> list[str]:
    args = connection_args(record)
    if clean:
        args.append("--clean")
    if schema_only:
        args.append("--schema-only")
    args.append(str(file_path))
    return args


def psql_args(record: ConnectionRecord, file_path: str | Path) -> list[str]:
    return [*connection_args(record), "-f", str(file_path)]


def transfer_dump_args(
    record: ConnectionRecord,
    *,
    schema_only: bool = False,
    tables: Sequence[str] | None = None,
) -> list[str]:
    args = [*connection_args(record), "-F", "c"]
    if schema_only:
        args.append("--schema-only")
    return args + table_args(tables)


def transfer_restore_args(record: ConnectionRecord, *, clean: bool = False) -> list[str]:
    args = connection_args(record)
    if clean:
        args.append("--clean")
    return args


def detect_dump_format(path: str | Path) -> ArchiveKind:
    """Sniff a restore input: directory, custom archive or plain SQL.

    An unreadable file is reported as a custom archive so pg_restore gets to
    produce the real error message.
    """

    path = Path(path)
    if path.is_dir():
        return ArchiveKind.DIRECTORY
    try:
        with path.open("rb") as handle:
            head = handle.read(len(ARCHIVE_MAGIC))
    except OSError:
        return ArchiveKind.CUSTOM
    if head.startswith(ARCHIVE_MAGIC):
        return ArchiveKind.CUSTOM
    return ArchiveKind.PLAIN


def classify_restore(exit_code: int, stderr: str, tool: str = "pg_restore") -> tuple[bool, str | None, str | None]:
    """Return ``(success, error, warnings)`` for a finished restore-side process.

    A non-zero exit only counts as failure when the captured stderr contains
    ``ERROR``; restore tools also exit non-zero for ignorable notices.
    """

    text = stderr.strip()
    if exit_code == 0:
        return True, None, text or None
    if FATAL_MARKER in stderr:
        return False, text, None
    return True, None, text or f"{tool} exited with status {exit_code}"


def output_size(path: str | Path) -> int:
    path = Path(path)
    try:
        if path.is_dir():
            return sum(entry.stat().st_size for entry in path.rglob("*") if entry.is_file())
        return path.stat().st_size
    except OSError:
        return 0


class TransferPipeline:
    """Runs pg_dump, pg_restore and psql as managed child processes."""

    def __init__(self, locator: BinaryLocator, credentials: CredentialSource) -> None:
        self._locator = locator
        self._credentials = credentials

    async def detect_tools(self) -> ToolsStatus:
        pg_dump = self._locator.locate("pg_dump")
        pg_restore = self._locator.locate("pg_restore")
        psql = self._locator.locate("psql")
        version = await self._locator.tool_version(pg_dump) if pg_dump else None
        return ToolsStatus(
            pg_dump=str(pg_dump) if pg_dump else None,
            pg_restore=str(pg_restore) if pg_restore else None,
            psql=str(psql) if psql else None,
            version=version,
        )

    async def dump(
        self,
        connection_id: str,
        dump_format: str,
        output_path: str | Path,
        *,
        schema_only: bool = False,
        tables: Sequence[str] | None = None,
    ) -> DumpOutcome:
        """Write a dump of ``connection_id``'s database to ``output_path``."""

        file_path = str(output_path)
        try:
            tool = self._require("pg_dump")
            target = await self._target(connection_id)
            argv = [str(tool), *dump_args(target.record, dump_format, file_path, schema_only=schema_only, tables=tables)]
            exit_code, stderr = await self._run(argv, target.password)
        except (ToolNotFoundError, ProcessError) as exc:
            return DumpOutcome(success=False, error=str(exc), started=False, file_path=file_path)
        if exit_code != 0:
            return DumpOutcome(
                success=False,
                error=stderr.strip() or f"pg_dump exited with status {exit_code}",
                exit_code=exit_code,
                file_path=file_path,
            )
        return DumpOutcome(
            success=True,
            warnings=stderr.strip() or None,
            exit_code=exit_code,
            file_path=file_path,
            size_bytes=output_size(file_path),
        )

    async def restore(
        self,
        connection_id: str,
        file_path: str | Path,
        *,
        clean: bool = False,
        schema_only: bool = False,
    ) -> RestoreOutcome:
        """Load ``file_path`` into ``connection_id``'s database.

        Plain SQL goes through psql, archives through pg_restore. ``clean``
        and ``schema_only`` only apply to archives.
        """

        kind = detect_dump_format(file_path)
        try:
            target = await self._target(connection_id)
            if kind is ArchiveKind.PLAIN:
                tool_name = "psql"
                tool = self._require("psql", hint="Plain SQL restore requires psql.")
                argv = [str(tool), *psql_args(target.record, file_path)]
            else:
                tool_name = "pg_restore"
                tool = self._require("pg_restore")
                argv = [str(tool), *restore_args(target.record, file_path, clean=clean, schema_only=schema_only)]
            exit_code, stderr = await self._run(argv, target.password)
        except (ToolNotFoundError, ProcessError) as exc:
            return RestoreOutcome(success=False, error=str(exc), started=False, archive_kind=kind)
        success, error, warnings = classify_restore(exit_code, stderr, tool_name)
        return RestoreOutcome(
            success=success,
            error=error,
            warnings=warnings,
            exit_code=exit_code,
            archive_kind=kind,
        )

    async def transfer(
        self,
        source_id: str,
        target_id: str,
        *,
        tables: Sequence[str] | None = None,
        schema_only: bool = False,
        clean: bool = False,
    ) -> TransferOutcome:
        """Stream a custom-format dump of the source straight into pg_restore.

        The two processes share an OS pipe, so the dump is never held in
        memory or written to disk. Only pg_restore's status decides success.
        """

        try:
            pg_dump = self._require("pg_dump")
            pg_restore = self._require("pg_restore")
            source = await self._target(source_id)
            target = await self._target(target_id)
            dump_argv = [str(pg_dump), *transfer_dump_args(source.record, schema_only=schema_only, tables=tables)]
            restore_argv = [str(pg_restore), *transfer_restore_args(target.record, clean=clean)]
            exit_code, restore_stderr, dump_stderr = await self._run_piped(
                dump_argv, source.password, restore_argv, target.password
            )
        except (ToolNotFoundError, ProcessError) as exc:
            return TransferOutcome(success=False, error=str(exc), started=False)
        if dump_stderr.strip():
            LOG.warning(
                "pg_dump reported problems during transfer",
                extra={"source_id": source_id, "target_id": target_id, "stderr": dump_stderr.strip()},
            )
        success, error, warnings = classify_restore(exit_code, restore_stderr)
        return TransferOutcome(
            success=success,
            error=error,
            warnings=warnings,
            exit_code=exit_code,
            dump_stderr=dump_stderr.strip() or None,
        )

    def _require(self, name: str, hint: str | None = None) -> Path:
        path = self._locator.locate(name)
        if path is None:
            raise ToolNotFoundError(name, hint)
        return path

    async def _target(self, connection_id: str) -> _Target:
        record = await self._credentials.get_connection_record(connection_id)
        password = await self._credentials.get_password(connection_id)
        return _Target(record=record, password=password)

    async def _run(self, argv: list[str], password: str) -> tuple[int, str]:
        LOG.debug("Spawning client tool", extra={"argv": argv})
        process = await _spawn(argv, password, stdout=asyncio.subprocess.DEVNULL)
        _, stderr = (await _communicate(process))[0]
        return process.returncode or 0, _decode(stderr)

    async def _run_piped(
        self,
        dump_argv: list[str],
        dump_password: str,
        restore_argv: list[str],
        restore_password: str,
    ) -> tuple[int, str, str]:
        read_fd, write_fd = os.pipe()
        try:
            LOG.debug("Spawning client tool", extra={"argv": dump_argv})
            dump_process = await _spawn(dump_argv, dump_password, stdout=write_fd)
        except ProcessError:
            os.close(read_fd)
            raise
        finally:
            os.close(write_fd)
        try:
            LOG.debug("Spawning client tool", extra={"argv": restore_argv})
            restore_process = await _spawn(
                restore_argv, restore_password, stdin=read_fd, stdout=asyncio.subprocess.DEVNULL
            )
        except ProcessError:
            dump_process.kill()
            await dump_process.wait()
            raise
        finally:
            os.close(read_fd)
        (_, dump_stderr), (_, restore_stderr) = await _communicate(dump_process, restore_process)
        return restore_process.returncode or 0, _decode(restore_stderr), _decode(dump_stderr)


async def _spawn(argv: list[str], password: str, **streams: object) -> asyncio.subprocess.Process:
    try:
        return await asyncio.create_subprocess_exec(
            *argv,
            stderr=asyncio.subprocess.PIPE,
            env=_child_env(password),
            **streams,
        )
    except OSError as exc:
        raise ProcessError(f"Failed to execute {Path(argv[0]).name}: {exc}") from exc


async def _communicate(*processes: asyncio.subprocess.Process) -> list[tuple[bytes, bytes]]:
    """Wait for every process; on cancellation or failure kill and reap the survivors."""

    try:
        return list(await asyncio.gather(*(process.communicate() for process in processes)))
    except BaseException:
        for process in processes:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
        for process in processes:
            await process.wait()
        raise


def _child_env(password: str, base: Mapping[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    if password:
        env["PGPASSWORD"] = password
    return env


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace")


__all__ = [
    "ARCHIVE_MAGIC",
    "ArchiveKind",
    "CredentialSource",
    "DumpFormat",
    "DumpOutcome",
    "ProcessError",
    "RestoreOutcome",
    "ToolNotFoundError",
    "ToolOutcome",
    "ToolsStatus",
    "TransferOutcome",
    "TransferPipeline",
    "classify_restore",
    "connection_args",
    "detect_dump_format",
    "dump_args",
    "format_flag",
    "output_size",
    "psql_args",
    "restore_args",
    "transfer_dump_args",
    "transfer_restore_args",
]
