"""Shared fixtures for arcfs tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from arcfs.fs.memory import MemoryHostFileSystem
from arcfs.fs.storage_root import StorageRoot

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Empty storage directory on disk."""
    d = tmp_path / "data"
    d.mkdir()
    return d


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    """Template tree holding a 10-byte ``welcome.txt`` and a nested file."""
    d = tmp_path / "template"
    d.mkdir()
    (d / "welcome.txt").write_bytes(b"hello user")
    (d / "docs").mkdir()
    (d / "docs" / "readme.md").write_bytes(b"# docs\n")
    return d


@pytest.fixture
def storage(data_dir: Path) -> StorageRoot:
    """StorageRoot on disk, no template, no quotas."""
    return StorageRoot(data_dir)


@pytest.fixture
def memory_host() -> MemoryHostFileSystem:
    """In-memory host with an empty ``/data`` directory."""
    return MemoryHostFileSystem("/data")


@pytest.fixture(params=["disk", "memory"])
def any_storage(request: pytest.FixtureRequest, data_dir: Path) -> StorageRoot:
    """StorageRoot without quotas, once on disk and once in memory."""
    if request.param == "disk":
        return StorageRoot(data_dir)
    return StorageRoot("/data", host=MemoryHostFileSystem("/data"))
