"""StorageConfig — settings a StorageRoot is built from."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

STORAGE_PATH_ENV_VAR = "ARCFS_STORAGE_PATH"
TEMPLATE_PATH_ENV_VAR = "ARCFS_TEMPLATE_PATH"
TOTAL_SIZE_ENV_VAR = "ARCFS_TOTAL_SIZE"
USERSPACE_SIZE_ENV_VAR = "ARCFS_USERSPACE_SIZE"
CREATE_STORAGE_ENV_VAR = "ARCFS_CREATE_STORAGE"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class StorageConfig:
    """Configuration for a storage root."""

    storage_path: Path
    """Host directory every user directory lives under."""

    template_path: Path | None = None
    """Directory copied into each new user's directory, if set."""

    total_size: int | None = None
    """Capacity of the whole storage root in bytes.  ``None`` = unlimited."""

    userspace_size: int | None = None
    """Capacity of each user directory in bytes.  ``None`` = unlimited."""

    create_missing: bool = False
    """Create ``storage_path`` at startup if it does not exist."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "storage_path", Path(self.storage_path))
        if self.template_path is not None:
            object.__setattr__(self, "template_path", Path(self.template_path))
        for name in ("total_size", "userspace_size"):
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or value < 0):
                raise ConfigurationError(f"{name} must be a non-negative integer, got {value!r}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StorageConfig:
        """Build a config from ``ARCFS_*`` environment variables."""
        env = os.environ if environ is None else environ

        storage_path = env.get(STORAGE_PATH_ENV_VAR)
        if not storage_path:
            raise ConfigurationError(f"env var {STORAGE_PATH_ENV_VAR!r} should be set")

        template_path = env.get(TEMPLATE_PATH_ENV_VAR) or None

        return cls(
            storage_path=Path(storage_path),
            template_path=Path(template_path) if template_path else None,
            total_size=_parse_size(env, TOTAL_SIZE_ENV_VAR),
            userspace_size=_parse_size(env, USERSPACE_SIZE_ENV_VAR),
            create_missing=_parse_bool(env, CREATE_STORAGE_ENV_VAR),
        )


def _parse_size(env: Mapping[str, str], name: str) -> int | None:
    raw = env.get(name, "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"env var {name!r} should be an integer, got {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"env var {name!r} should not be negative, got {value}")
    return value


def _parse_bool(env: Mapping[str, str], name: str) -> bool:
    raw = env.get(name, "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"env var {name!r} should be a boolean, got {raw!r}")
