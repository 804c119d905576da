"""App configuration loading helpers."""

from __future__ import annotations

import logging
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .locator import DEFAULT_BUNDLED_ROOTS, DEFAULT_SEARCH_DIRS

CONFIG_FILE = Path.home() / ".config" / "pgstudio" / "config.toml"
DEFAULT_STORAGE_PATH = Path.home() / ".local" / "share" / "pgstudio" / "pgstudio.db"

LOG = logging.getLogger(__name__)


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    storage_path: Path = DEFAULT_STORAGE_PATH
    connect_timeout: float = Field(default=10.0, gt=0)
    tool_search_dirs: list[Path] = Field(default_factory=lambda: [Path(entry) for entry in DEFAULT_SEARCH_DIRS])
    bundled_tool_roots: list[Path] = Field(default_factory=lambda: [Path(entry) for entry in DEFAULT_BUNDLED_ROOTS])
    ai_request_timeout: float = Field(default=60.0, gt=0)
    ai_max_tokens: int = Field(default=4096, gt=0)

    def with_storage_path(self, path: Path) -> AppConfig:
        """Return a copy pointing the local store at another file."""

        return self.model_copy(update={"storage_path": path})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing or invalid."""

    try:
        with CONFIG_FILE.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        LOG.warning("Ignoring invalid config file", extra={"path": str(CONFIG_FILE), "errors": exc.errors()})
        return AppConfig()


__all__ = ["AppConfig", "CONFIG_FILE", "DEFAULT_STORAGE_PATH", "load_config"]
