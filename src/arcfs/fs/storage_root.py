"""StorageRoot — quota-aware, containment-checked access to one host directory."""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import posixpath
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from .exceptions import OperationError, StorageRootError
from .host import LocalHostFileSystem, walk_tree
from .quota import GLOBAL_SCOPE, QuotaGuard
from .types import (
    CopyResult,
    DeleteResult,
    HostErrorKind,
    HostIOFailure,
    InfoResult,
    InvalidPathEncoding,
    ItemInfo,
    ListResult,
    MimeResult,
    MkdirResult,
    MoveResult,
    NotEnoughStorage,
    PathBreaksOut,
    QuotaResult,
    ReadResult,
    SizeResult,
    TimeInfoResult,
    TreeResult,
    WriteResult,
    failure,
)
from .utils import (
    classify_os_error,
    decode_path,
    guess_mime_type,
    is_within,
    item_name,
    join_within,
    relative_to,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from .config import StorageConfig
    from .host import HostFileSystem

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StorageRoot:
    """Safe access to one host directory tree.

    Every operation takes a logical path relative to the root, joins it
    onto the canonical root and normalizes it lexically.  A result that
    falls outside the root fails with ``PathBreaksOut`` before any host
    call is made.  Existing symlinks inside the tree are refused as well,
    and tree walks never follow them.

    Operations never raise for expected conditions; they return a result
    object whose ``error`` is an ``FSError``.  Host calls run in worker
    threads via ``asyncio.to_thread``.

    Configuration is fixed at construction, so one instance may be shared
    by any number of concurrent ``UserScope`` views.
    """

    def __init__(
        self,
        storage_path: Path | str,
        template_path: Path | str | None = None,
        total_size: int | None = None,
        userspace_size: int | None = None,
        *,
        host: HostFileSystem | None = None,
        create_missing: bool = False,
    ) -> None:
        self._host: HostFileSystem = host if host is not None else LocalHostFileSystem()
        logger.debug("Initializing storage root at %s", storage_path)

        root = self._host.realpath(os.fspath(storage_path))
        if not self._host.exists(root):
            if not create_missing:
                raise StorageRootError(f"Storage directory does not exist: {root}")
            self._host.make_dir(root, parents=True)
        elif not self._host.is_dir(root):
            raise StorageRootError(f"Storage path is not a directory: {root}")

        template: str | None = None
        if template_path is not None:
            template = self._host.realpath(os.fspath(template_path))
            if not self._host.is_dir(template):
                raise StorageRootError(
                    f"Template path must be an existing directory: {template}"
                )

        self._root = self._host.realpath(root)
        self._template = template
        self._total_size = total_size
        self._userspace_size = userspace_size
        self._guard = QuotaGuard()

    @classmethod
    def from_config(
        cls, config: StorageConfig, host: HostFileSystem | None = None
    ) -> StorageRoot:
        """Build a StorageRoot from a ``StorageConfig``."""
        return cls(
            config.storage_path,
            config.template_path,
            config.total_size,
            config.userspace_size,
            host=host,
            create_missing=config.create_missing,
        )

    # =========================================================================
    # Configuration (read-only)
    # =========================================================================

    @property
    def root(self) -> str:
        """Canonical absolute host path of the root."""
        return self._root

    @property
    def template_path(self) -> str | None:
        return self._template

    @property
    def total_size(self) -> int | None:
        return self._total_size

    @property
    def userspace_size(self) -> int | None:
        return self._userspace_size

    @property
    def host(self) -> HostFileSystem:
        return self._host

    @property
    def guard(self) -> QuotaGuard:
        return self._guard

    def __repr__(self) -> str:
        return f"StorageRoot({self._root!r})"

    # =========================================================================
    # Path Resolution & Security
    # =========================================================================

    def resolve(self, path: str | bytes) -> str:
        """Resolve a logical path to a canonical host path inside the root.

        Purely lexical: touches no host state.  Raises ``OperationError``
        wrapping ``InvalidPathEncoding`` or ``PathBreaksOut``.
        """
        text, error = decode_path(path)
        if text is None:
            raise OperationError(InvalidPathEncoding(error))

        resolved = join_within(self._root, text)
        if resolved is None:
            logger.warning("Refused path escaping storage root: %r", text)
            raise OperationError(PathBreaksOut(text))
        return resolved

    def is_breaking_out(self, final_path: str) -> bool:
        """True if an already-resolved host path lies outside the root."""
        return not is_within(self._root, final_path)

    def _resolve_below_root(self, path: str | bytes) -> str:
        """Like ``resolve`` but refuses the root itself."""
        resolved = self.resolve(path)
        if resolved == self._root:
            raise OperationError(PathBreaksOut(relative_to(self._root, resolved)))
        return resolved

    def _reject_symlinks(self, path: str) -> None:
        """Refuse *path* if any existing component below the root is a symlink."""
        rel = relative_to(self._root, path)
        if rel == ".":
            return
        current = self._root
        for part in rel.split("/"):
            current = posixpath.join(current, part)
            if self._host.is_symlink(current):
                logger.warning("Refused path through symlink: %r", rel)
                raise OperationError(PathBreaksOut(rel))
            if not self._host.exists(current):
                return

    def _check_name(self, path: str) -> str:
        text, error = decode_path(path)
        if text is None:
            raise OperationError(InvalidPathEncoding(error))
        return text

    def _host_failure(self, exc: OSError) -> HostIOFailure:
        kind = classify_os_error(exc)
        if kind is HostErrorKind.OTHER:
            logger.error("Host filesystem call failed: %s", exc, exc_info=True)
        return HostIOFailure(kind, detail=exc.strerror or type(exc).__name__)

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking host helper in a worker thread, classifying OSErrors."""
        try:
            return await asyncio.to_thread(fn, *args)
        except OSError as e:
            raise OperationError(self._host_failure(e)) from e

    # =========================================================================
    # Blocking helpers (run in worker threads)
    # =========================================================================

    def _size_of(self, path: str) -> int:
        if self._host.is_file(path):
            return self._host.stat(path).size
        if not self._host.is_dir(path):
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)
        return sum(
            self._host.stat(entry.path).size
            for entry in walk_tree(self._host, path)
            if not entry.is_dir
        )

    def _item_size(self, path: str) -> int:
        self._reject_symlinks(path)
        return self._size_of(path)

    def _copy_tree(self, source: str, target: str) -> int:
        """Copy *source* (file or directory) to *target*; return files copied."""
        if self._host.is_file(source):
            self._host.copy_file(source, target)
            return 1
        if not self._host.is_dir(source):
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), source)
        if target == source or target.startswith(source.rstrip("/") + "/"):
            raise OSError(errno.EINVAL, "Cannot copy a directory into itself", target)

        if not self._host.is_dir(target):
            self._host.make_dir(target, parents=True)

        copied = 0
        for entry in walk_tree(self._host, source):
            out = posixpath.join(target, relative_to(source, entry.path))
            if entry.is_dir:
                if not self._host.is_dir(out):
                    self._host.make_dir(out, parents=True)
                continue
            parent = posixpath.dirname(out)
            if not self._host.is_dir(parent):
                self._host.make_dir(parent, parents=True)
            self._host.copy_file(entry.path, out)
            copied += 1
        return copied

    def _scan(self, path: str) -> tuple[list[str], list[str]]:
        self._reject_symlinks(path)
        files: list[str] = []
        directories: list[str] = []
        for entry in self._host.scan_dir(path):
            if entry.is_symlink:
                continue
            self._check_name(entry.path)
            (directories if entry.is_dir else files).append(entry.path)
        return sorted(files), sorted(directories)

    def _tree(self, path: str) -> list[str]:
        self._reject_symlinks(path)
        files = [
            self._check_name(entry.path)
            for entry in walk_tree(self._host, path)
            if not entry.is_dir
        ]
        return sorted(files)

    def _times(self, path: str) -> tuple[datetime, datetime]:
        self._reject_symlinks(path)
        st = self._host.stat(path)
        return (
            datetime.fromtimestamp(st.created, tz=UTC),
            datetime.fromtimestamp(st.modified, tz=UTC),
        )

    def _info(self, path: str) -> ItemInfo:
        self._reject_symlinks(path)
        st = self._host.stat(path)
        is_dir = self._host.is_dir(path)
        return ItemInfo(
            path=relative_to(self._root, path),
            name=item_name(relative_to(self._root, path)),
            is_directory=is_dir,
            size_bytes=self._size_of(path),
            mime_type=None if is_dir else guess_mime_type(path),
            created_at=datetime.fromtimestamp(st.created, tz=UTC),
            modified_at=datetime.fromtimestamp(st.modified, tz=UTC),
        )

    def _write(self, path: str, data: bytes) -> bool:
        self._reject_symlinks(path)
        created = not self._host.exists(path)
        self._host.write_bytes(path, data)
        return created

    def _read(self, path: str) -> bytes:
        self._reject_symlinks(path)
        return self._host.read_bytes(path)

    def _make_dir(self, path: str, parents: bool) -> None:
        self._reject_symlinks(path)
        self._host.make_dir(path, parents=parents)

    def _remove(self, path: str) -> None:
        self._reject_symlinks(path)
        if self._host.is_file(path):
            self._host.remove_file(path)
        else:
            self._host.remove_tree(path)

    def _rename(self, source: str, target: str) -> None:
        self._reject_symlinks(source)
        self._reject_symlinks(target)
        self._host.rename(source, target)

    def _copy(self, source: str, target: str) -> int:
        self._reject_symlinks(source)
        self._reject_symlinks(target)
        return self._copy_tree(source, target)

    def _deploy(self, staging: str, target: str) -> int:
        """Copy the template into *staging*, then promote it to *target*."""
        assert self._template is not None
        self._reject_symlinks(target)
        try:
            copied = self._copy_tree(self._template, staging)
            try:
                self._host.rename(staging, target)
            except OSError:
                if not self._host.is_dir(target):
                    raise
                logger.debug("%s was provisioned concurrently; discarding copy", target)
                self._host.remove_tree(staging)
        except BaseException:
            if self._host.exists(staging):
                try:
                    self._host.remove_tree(staging)
                except OSError:
                    logger.warning("Failed to clean up staging directory %s", staging)
            raise
        return copied

    # =========================================================================
    # Quota
    # =========================================================================

    async def _check_capacity(
        self, scope: str, incoming: int, capacity: int | None
    ) -> None:
        """Fail with ``NotEnoughStorage`` if *incoming* bytes won't fit in *scope*."""
        if capacity is None:
            return
        used = await self._run(self._size_of, scope)
        if used + incoming > capacity:
            logger.warning(
                "Refused %d bytes for %s: %d of %d bytes used",
                incoming,
                relative_to(self._root, scope),
                used,
                capacity,
            )
            raise OperationError(
                NotEnoughStorage(required=incoming, available=max(0, capacity - used))
            )

    async def measure(self, scope: str | bytes, capacity: int | None) -> QuotaResult:
        """Usage of the logical path *scope* against *capacity*."""
        try:
            resolved = self.resolve(scope)
            used = await self._run(self._size_of, resolved)
        except OperationError as e:
            return failure(QuotaResult, e.error, capacity=capacity)
        return QuotaResult(
            success=True,
            message=f"{used:,} bytes used",
            used=used,
            capacity=capacity,
        )

    async def usage(self) -> QuotaResult:
        """Usage of the whole root against the global capacity."""
        return await self.measure(GLOBAL_SCOPE, self._total_size)

    # =========================================================================
    # Operations
    # =========================================================================

    async def create_dir(self, path: str | bytes, *, parents: bool = False) -> MkdirResult:
        """Create a directory.  Fails if it already exists."""
        try:
            resolved = self.resolve(path)
            await self._run(self._make_dir, resolved, parents)
        except OperationError as e:
            return failure(MkdirResult, e.error)
        rel = relative_to(self._root, resolved)
        return MkdirResult(success=True, message=f"Created directory: {rel}", path=rel)

    async def remove_item(self, path: str | bytes) -> DeleteResult:
        """Delete a file, or a directory with everything below it."""
        try:
            resolved = self._resolve_below_root(path)
            await self._run(self._remove, resolved)
        except OperationError as e:
            return failure(DeleteResult, e.error)
        rel = relative_to(self._root, resolved)
        return DeleteResult(success=True, message=f"Deleted: {rel}", path=rel)

    async def move_item(self, source: str | bytes, target: str | bytes) -> MoveResult:
        """Rename *source* to *target*."""
        try:
            src = self._resolve_below_root(source)
            dest = self._resolve_below_root(target)
            await self._run(self._rename, src, dest)
        except OperationError as e:
            return failure(MoveResult, e.error)
        old, new = relative_to(self._root, src), relative_to(self._root, dest)
        return MoveResult(
            success=True, message=f"Moved {old} to {new}", old_path=old, new_path=new
        )

    async def copy_item(self, source: str | bytes, target: str | bytes) -> CopyResult:
        """Copy a file, or a directory tree, from *source* to *target*.

        The projected total (current usage plus the size of *source*) must
        fit the global capacity.
        """
        try:
            src = self.resolve(source)
            dest = self._resolve_below_root(target)
            async with self._guard.hold(GLOBAL_SCOPE, self._total_size):
                if self._total_size is not None:
                    incoming = await self._run(self._size_of, src)
                    await self._check_capacity(self._root, incoming, self._total_size)
                copied = await self._run(self._copy, src, dest)
        except OperationError as e:
            return failure(CopyResult, e.error)
        old, new = relative_to(self._root, src), relative_to(self._root, dest)
        return CopyResult(
            success=True,
            message=f"Copied {old} to {new} ({copied} files)",
            source=old,
            target=new,
            files_copied=copied,
        )

    async def read_file(self, path: str | bytes) -> ReadResult:
        """Read a whole file."""
        try:
            resolved = self.resolve(path)
            content = await self._run(self._read, resolved)
        except OperationError as e:
            return failure(ReadResult, e.error)
        rel = relative_to(self._root, resolved)
        return ReadResult(
            success=True,
            message=f"Read {len(content):,} bytes from {rel}",
            path=rel,
            content=content,
        )

    async def write_file(self, path: str | bytes, data: bytes) -> WriteResult:
        """Write a whole file, creating or replacing it.

        Fails with ``NotEnoughStorage`` (and writes nothing) when current
        usage plus ``len(data)`` would exceed the global capacity.
        """
        try:
            resolved = self._resolve_below_root(path)
            async with self._guard.hold(GLOBAL_SCOPE, self._total_size):
                await self._check_capacity(self._root, len(data), self._total_size)
                created = await self._run(self._write, resolved, bytes(data))
        except OperationError as e:
            return failure(WriteResult, e.error)
        rel = relative_to(self._root, resolved)
        return WriteResult(
            success=True,
            message=f"{'Created' if created else 'Updated'}: {rel}",
            path=rel,
            created=created,
            size_bytes=len(data),
        )

    async def list_dir(self, path: str | bytes) -> ListResult:
        """List a directory as separate, sorted file and directory host paths."""
        try:
            resolved = self.resolve(path)
            files, directories = await self._run(self._scan, resolved)
        except OperationError as e:
            return failure(ListResult, e.error)
        rel = relative_to(self._root, resolved)
        return ListResult(
            success=True,
            message=f"Listed {len(files) + len(directories)} items in {rel}",
            path=rel,
            files=files,
            directories=directories,
        )

    async def get_mime(self, path: str | bytes) -> MimeResult:
        """Guess a MIME type from the item's name (``None`` if unknown)."""
        try:
            resolved = self.resolve(path)
        except OperationError as e:
            return failure(MimeResult, e.error)
        rel = relative_to(self._root, resolved)
        mime_type = guess_mime_type(resolved)
        return MimeResult(
            success=True,
            message=f"{rel}: {mime_type or 'unknown type'}",
            path=rel,
            mime_type=mime_type,
        )

    async def get_item_size(self, path: str | bytes) -> SizeResult:
        """Size of a file, or the total size of every file below a directory."""
        try:
            resolved = self.resolve(path)
            size = await self._run(self._item_size, resolved)
        except OperationError as e:
            return failure(SizeResult, e.error)
        rel = relative_to(self._root, resolved)
        return SizeResult(
            success=True, message=f"{rel}: {size:,} bytes", path=rel, size_bytes=size
        )

    async def get_item_time_info(self, path: str | bytes) -> TimeInfoResult:
        """Creation and modification timestamps (UTC)."""
        try:
            resolved = self.resolve(path)
            created, modified = await self._run(self._times, resolved)
        except OperationError as e:
            return failure(TimeInfoResult, e.error)
        rel = relative_to(self._root, resolved)
        return TimeInfoResult(
            success=True,
            message=f"Time info for {rel}",
            path=rel,
            created_at=created,
            modified_at=modified,
        )

    async def get_dir_tree(self, path: str | bytes) -> TreeResult:
        """Every file (not directory) below *path*, as sorted host paths."""
        try:
            resolved = self.resolve(path)
            files = await self._run(self._tree, resolved)
        except OperationError as e:
            return failure(TreeResult, e.error)
        rel = relative_to(self._root, resolved)
        return TreeResult(
            success=True,
            message=f"Found {len(files)} files below {rel}",
            path=rel,
            files=files,
        )

    async def get_info(self, path: str | bytes) -> InfoResult:
        """Name, size, MIME type and timestamps of one item."""
        try:
            resolved = self.resolve(path)
            info = await self._run(self._info, resolved)
        except OperationError as e:
            return failure(InfoResult, e.error)
        return InfoResult(success=True, message=f"Info for {info.path}", info=info)

    async def deploy_template(self, target: str | bytes) -> CopyResult:
        """Populate the new directory *target* with a copy of the template.

        The copy goes to a hidden staging directory next to *target* and is
        renamed into place only once complete, so a failure never leaves a
        half-populated *target*.  If *target* appears in the meantime the
        staging copy is discarded.
        """
        if self._template is None:
            return failure(
                CopyResult, HostIOFailure(HostErrorKind.NOT_FOUND, "no template configured")
            )
        try:
            dest = self._resolve_below_root(target)
            staging = posixpath.join(
                posixpath.dirname(dest),
                f".deploy-{posixpath.basename(dest)}-{uuid.uuid4().hex[:12]}",
            )
            async with self._guard.hold(GLOBAL_SCOPE, self._total_size):
                if self._total_size is not None:
                    incoming = await self._run(self._size_of, self._template)
                    await self._check_capacity(self._root, incoming, self._total_size)
                copied = await self._run(self._deploy, staging, dest)
        except OperationError as e:
            return failure(CopyResult, e.error)
        rel = relative_to(self._root, dest)
        logger.debug("Deployed template into %s (%d files)", rel, copied)
        return CopyResult(
            success=True,
            message=f"Deployed template to {rel}",
            source=self._template,
            target=rel,
            files_copied=copied,
        )

