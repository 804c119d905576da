"""Discovery of the PostgreSQL client binaries on the local machine."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
from pathlib import Path
from typing import Iterable, Sequence

LOG = logging.getLogger(__name__)

DEFAULT_SEARCH_DIRS: tuple[str, ...] = ("/usr/local/bin", "/usr/bin", "/opt/homebrew/bin")
DEFAULT_BUNDLED_ROOTS: tuple[str, ...] = (
    "/Applications/Postgres.app/Contents/Versions",
    "/usr/lib/postgresql",
)

_DIGITS = re.compile(r"\d+")


def version_sort_key(name: str) -> tuple[int, tuple[int, ...], str]:
    """Order version-looking directory names newest first.

    Names without any digit group sort after every versioned name.
    """

    groups = tuple(int(group) for group in _DIGITS.findall(name))
    if not groups:
        return (1, (), name)
    # Trailing 1 sorts "16" after "16.1".
    return (0, tuple(-group for group in groups) + (1,), name)


def is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


class BinaryLocator:
    """Finds named tools in fixed directories, bundled installs, then PATH.

    Absence is not an error: :meth:`locate` returns ``None``.
    """

    def __init__(
        self,
        search_dirs: Sequence[str | Path] = DEFAULT_SEARCH_DIRS,
        bundled_roots: Sequence[str | Path] = DEFAULT_BUNDLED_ROOTS,
        *,
        use_path: bool = True,
    ) -> None:
        self._search_dirs = tuple(Path(entry) for entry in search_dirs)
        self._bundled_roots = tuple(Path(entry) for entry in bundled_roots)
        self._use_path = use_path

    def candidates(self, name: str) -> Iterable[Path]:
        """Yield every location checked for ``name``, in search order."""

        for directory in self._search_dirs:
            yield directory / name
        for root in self._bundled_roots:
            for version_dir in _version_dirs(root):
                yield version_dir / "bin" / name

    def locate(self, name: str) -> Path | None:
        for candidate in self.candidates(name):
            if is_executable(candidate):
                return candidate
        if self._use_path:
            found = shutil.which(name)
            if found:
                return Path(found)
        return None

    async def tool_version(self, path: str | Path) -> str | None:
        """Return ``<path> --version`` output, or ``None`` when it cannot be read."""

        try:
            process = await asyncio.create_subprocess_exec(
                str(path),
                "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
            stdout, _ = await process.communicate()
        except OSError:
            LOG.debug("Unable to query tool version", exc_info=True, extra={"path": str(path)})
            return None
        if process.returncode != 0:
            return None
        version = stdout.decode("utf-8", errors="replace").strip()
        return version or None


def _version_dirs(root: Path) -> list[Path]:
    try:
        entries = [entry for entry in root.iterdir() if entry.is_dir()]
    except OSError:
        return []
    return sorted(entries, key=lambda entry: version_sort_key(entry.name))


__all__ = [
    "BinaryLocator",
    "DEFAULT_BUNDLED_ROOTS",
    "DEFAULT_SEARCH_DIRS",
    "is_executable",
    "version_sort_key",
]
