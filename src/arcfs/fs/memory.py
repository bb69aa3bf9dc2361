"""MemoryHostFileSystem — in-memory HostFileSystem for tests and tooling."""

from __future__ import annotations

import errno
import os
import posixpath
import threading
import time
from dataclasses import dataclass

from .host import HostEntry, HostStat


@dataclass
class _Node:
    is_dir: bool
    data: bytes = b""
    created: float = 0.0
    modified: float = 0.0


def _error(cls: type[OSError], code: int, path: str) -> OSError:
    return cls(code, os.strerror(code), path)


class MemoryHostFileSystem:
    """HostFileSystem that keeps the whole tree in a dict.

    Raises the same ``OSError`` subclasses a POSIX disk would, so code
    classifying host failures behaves identically against both.  Has no
    symlinks.  Safe to use from worker threads.
    """

    def __init__(self, *dirs: str) -> None:
        self._nodes: dict[str, _Node] = {"/": self._new_node(is_dir=True)}
        self._lock = threading.RLock()
        for d in dirs:
            self.make_dir(d, parents=True)

    @staticmethod
    def _new_node(is_dir: bool, data: bytes = b"") -> _Node:
        now = time.time()
        return _Node(is_dir=is_dir, data=data, created=now, modified=now)

    @staticmethod
    def _norm(path: str) -> str:
        return posixpath.normpath("/" + path.lstrip("/"))

    def _children(self, path: str) -> list[str]:
        prefix = path.rstrip("/") + "/"
        return [
            p for p in self._nodes
            if p.startswith(prefix) and "/" not in p[len(prefix):] and p != path
        ]

    def _descendants(self, path: str) -> list[str]:
        prefix = path.rstrip("/") + "/"
        return [p for p in self._nodes if p.startswith(prefix) and p != path]

    def _require_parent_dir(self, path: str) -> None:
        parent = posixpath.dirname(path)
        node = self._nodes.get(parent)
        if node is None:
            raise _error(FileNotFoundError, errno.ENOENT, path)
        if not node.is_dir:
            raise _error(NotADirectoryError, errno.ENOTDIR, path)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def realpath(self, path: str) -> str:
        return self._norm(path)

    def exists(self, path: str) -> bool:
        with self._lock:
            return self._norm(path) in self._nodes

    def is_file(self, path: str) -> bool:
        with self._lock:
            node = self._nodes.get(self._norm(path))
            return node is not None and not node.is_dir

    def is_dir(self, path: str) -> bool:
        with self._lock:
            node = self._nodes.get(self._norm(path))
            return node is not None and node.is_dir

    def is_symlink(self, path: str) -> bool:
        return False

    def scan_dir(self, path: str) -> list[HostEntry]:
        path = self._norm(path)
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise _error(FileNotFoundError, errno.ENOENT, path)
            if not node.is_dir:
                raise _error(NotADirectoryError, errno.ENOTDIR, path)
            return [
                HostEntry(
                    name=posixpath.basename(child),
                    path=child,
                    is_dir=self._nodes[child].is_dir,
                )
                for child in self._children(path)
            ]

    def read_bytes(self, path: str) -> bytes:
        path = self._norm(path)
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise _error(FileNotFoundError, errno.ENOENT, path)
            if node.is_dir:
                raise _error(IsADirectoryError, errno.EISDIR, path)
            return node.data

    def stat(self, path: str) -> HostStat:
        path = self._norm(path)
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise _error(FileNotFoundError, errno.ENOENT, path)
            return HostStat(
                size=0 if node.is_dir else len(node.data),
                created=node.created,
                modified=node.modified,
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def make_dir(self, path: str, *, parents: bool = False) -> None:
        path = self._norm(path)
        with self._lock:
            if path in self._nodes:
                raise _error(FileExistsError, errno.EEXIST, path)
            parent = posixpath.dirname(path)
            if parents and parent not in self._nodes:
                self.make_dir(parent, parents=True)
            self._require_parent_dir(path)
            self._nodes[path] = self._new_node(is_dir=True)

    def write_bytes(self, path: str, data: bytes) -> None:
        path = self._norm(path)
        with self._lock:
            node = self._nodes.get(path)
            if node is not None and node.is_dir:
                raise _error(IsADirectoryError, errno.EISDIR, path)
            self._require_parent_dir(path)
            if node is None:
                self._nodes[path] = self._new_node(is_dir=False, data=bytes(data))
            else:
                node.data = bytes(data)
                node.modified = time.time()

    def remove_file(self, path: str) -> None:
        path = self._norm(path)
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise _error(FileNotFoundError, errno.ENOENT, path)
            if node.is_dir:
                raise _error(IsADirectoryError, errno.EISDIR, path)
            del self._nodes[path]

    def remove_tree(self, path: str) -> None:
        path = self._norm(path)
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise _error(FileNotFoundError, errno.ENOENT, path)
            if not node.is_dir:
                raise _error(NotADirectoryError, errno.ENOTDIR, path)
            for p in self._descendants(path):
                del self._nodes[p]
            del self._nodes[path]

    def rename(self, src: str, dest: str) -> None:
        src, dest = self._norm(src), self._norm(dest)
        with self._lock:
            node = self._nodes.get(src)
            if node is None:
                raise _error(FileNotFoundError, errno.ENOENT, src)
            if src == dest:
                return
            if dest.startswith(src.rstrip("/") + "/"):
                raise _error(OSError, errno.EINVAL, dest)
            self._require_parent_dir(dest)

            existing = self._nodes.get(dest)
            if existing is not None:
                if not node.is_dir and existing.is_dir:
                    raise _error(IsADirectoryError, errno.EISDIR, dest)
                if node.is_dir and not existing.is_dir:
                    raise _error(NotADirectoryError, errno.ENOTDIR, dest)
                if existing.is_dir and self._children(dest):
                    raise _error(OSError, errno.ENOTEMPTY, dest)
                del self._nodes[dest]

            moved = {src: node}
            for p in self._descendants(src):
                moved[p] = self._nodes[p]
            for p in moved:
                del self._nodes[p]
            for p, n in moved.items():
                self._nodes[dest + p[len(src):]] = n

    def copy_file(self, src: str, dest: str) -> None:
        with self._lock:
            self.write_bytes(dest, self.read_bytes(src))
