"""HostFileSystem protocol, the local-disk implementation, and tree walking.

Every host call the storage layer makes goes through ``HostFileSystem`` so
the same logic can run against the real disk or an in-memory fake.  All
paths at this level are absolute, normalized POSIX strings; containment
has already been checked by the caller.

Methods are synchronous and may block.  Callers run them in a worker
thread (``asyncio.to_thread``).
"""

from __future__ import annotations

import contextlib
import errno
import os
import shutil
import stat
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterator


@dataclass(frozen=True)
class HostEntry:
    """One child of a scanned directory."""

    name: str
    path: str
    is_dir: bool
    is_symlink: bool = False


@dataclass(frozen=True)
class HostStat:
    """The subset of ``os.stat_result`` the storage layer needs."""

    size: int
    created: float
    modified: float


@runtime_checkable
class HostFileSystem(Protocol):
    """Capability interface for host filesystem access.

    Failures are reported by raising ``OSError`` subclasses
    (``FileNotFoundError``, ``FileExistsError``, ``NotADirectoryError``,
    ``IsADirectoryError``, ...) exactly as the OS would.
    """

    def realpath(self, path: str) -> str: ...

    def exists(self, path: str) -> bool: ...

    def is_file(self, path: str) -> bool: ...

    def is_dir(self, path: str) -> bool: ...

    def is_symlink(self, path: str) -> bool: ...

    def make_dir(self, path: str, *, parents: bool = False) -> None: ...

    def scan_dir(self, path: str) -> list[HostEntry]: ...

    def read_bytes(self, path: str) -> bytes: ...

    def write_bytes(self, path: str, data: bytes) -> None: ...

    def remove_file(self, path: str) -> None: ...

    def remove_tree(self, path: str) -> None: ...

    def rename(self, src: str, dest: str) -> None: ...

    def copy_file(self, src: str, dest: str) -> None: ...

    def stat(self, path: str) -> HostStat: ...


class LocalHostFileSystem:
    """HostFileSystem backed by the real disk."""

    def realpath(self, path: str) -> str:
        return os.path.realpath(path)

    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def is_file(self, path: str) -> bool:
        return os.path.isfile(path)

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path)

    def is_symlink(self, path: str) -> bool:
        return os.path.islink(path)

    def make_dir(self, path: str, *, parents: bool = False) -> None:
        Path(path).mkdir(parents=parents)

    def scan_dir(self, path: str) -> list[HostEntry]:
        with os.scandir(path) as it:
            return [
                HostEntry(
                    name=entry.name,
                    path=entry.path,
                    is_dir=entry.is_dir(follow_symlinks=False),
                    is_symlink=entry.is_symlink(),
                )
                for entry in it
            ]

    def read_bytes(self, path: str) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: str, data: bytes) -> None:
        """Write *data* atomically via a sibling temp file + replace.

        A new file gets ``0o666`` minus the umask; an overwritten file keeps
        its permission bits.
        """
        target = Path(path)
        if target.is_dir():
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
        tmp_path = target.with_name(f".arcfs-{uuid.uuid4().hex}.tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o666)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            with contextlib.suppress(FileNotFoundError):
                os.chmod(tmp_path, stat.S_IMODE(os.stat(target).st_mode))
            tmp_path.replace(target)
        except BaseException:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise

    def remove_file(self, path: str) -> None:
        Path(path).unlink()

    def remove_tree(self, path: str) -> None:
        shutil.rmtree(path)

    def rename(self, src: str, dest: str) -> None:
        os.rename(src, dest)

    def copy_file(self, src: str, dest: str) -> None:
        shutil.copyfile(src, dest, follow_symlinks=False)

    def stat(self, path: str) -> HostStat:
        st = os.stat(path, follow_symlinks=False)
        return HostStat(
            size=st.st_size,
            created=getattr(st, "st_birthtime", st.st_ctime),
            modified=st.st_mtime,
        )


def walk_tree(host: HostFileSystem, path: str) -> Iterator[HostEntry]:
    """Yield every entry below *path*; a directory comes before its contents.

    Symlinks are skipped, never followed.  The iterator is lazy: each
    directory is scanned only when the walk reaches it.
    """
    pending = [path]
    while pending:
        current = pending.pop()
        subdirs: list[str] = []
        for entry in sorted(host.scan_dir(current), key=lambda e: e.name):
            if entry.is_symlink:
                continue
            yield entry
            if entry.is_dir:
                subdirs.append(entry.path)
        pending.extend(reversed(subdirs))
