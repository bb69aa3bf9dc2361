"""UserScope — one user's isolated, quota-scoped view of a StorageRoot.

Paths are automatically prefixed with ``{user_id}/`` before they reach the
StorageRoot, and the prefix (together with the host root) is stripped from
every path handed back, so callers only ever see paths relative to their
own directory.

The user directory is created on the first operation for that user,
populated from the storage root's template when one is configured.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING

from .exceptions import OperationError
from .types import (
    CopyResult,
    DeleteResult,
    HostErrorKind,
    HostIOFailure,
    InfoResult,
    InvalidPathEncoding,
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
from .utils import decode_path, is_within, item_name, normalize_path, relative_to

if TYPE_CHECKING:
    from .storage_root import StorageRoot

logger = logging.getLogger(__name__)


class UserScope:
    """Per-user view over a shared ``StorageRoot``.

    Cheap to construct; build one per logical operation.  Holds nothing
    beyond the StorageRoot reference and the user id, so no quota or
    existence state outlives the instance.
    """

    def __init__(self, storage: StorageRoot, user_id: int) -> None:
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise ValueError(f"user_id must be an int, got {user_id!r}")
        if user_id < 0:
            raise ValueError(f"user_id must not be negative, got {user_id}")
        self._storage = storage
        self._user_id = user_id
        self._base = str(user_id)

    @property
    def storage(self) -> StorageRoot:
        return self._storage

    @property
    def user_id(self) -> int:
        return self._user_id

    @property
    def base_path(self) -> str:
        """The user directory, relative to the storage root."""
        return self._base

    def __repr__(self) -> str:
        return f"UserScope({self._storage!r}, user_id={self._user_id})"

    # ------------------------------------------------------------------
    # Path scoping helpers
    # ------------------------------------------------------------------

    def scoped(self, path: str | bytes) -> str:
        """Re-root a user-facing path under the user directory.

        Raises ``OperationError`` if the path leaves the user directory.
        """
        text, error = decode_path(path)
        if text is None:
            raise OperationError(InvalidPathEncoding(error))
        rel = normalize_path(text)
        if rel == ".." or rel.startswith("../"):
            logger.warning("User %d: refused path escaping user root: %r", self._user_id, text)
            raise OperationError(PathBreaksOut(text))
        return self._base if rel == "." else f"{self._base}/{rel}"

    def _scoped_below_base(self, path: str | bytes) -> str:
        scoped = self.scoped(path)
        if scoped == self._base:
            raise OperationError(PathBreaksOut("."))
        return scoped

    def _unscoped(self, stored: str | None) -> str | None:
        """Strip the ``{user_id}`` segment from a root-relative path."""
        if stored is None:
            return None
        if stored == self._base:
            return "."
        return stored[len(self._base) + 1 :]

    def _descope(self, host_paths: list[str]) -> list[str]:
        """Strip the host root and user segment from absolute host paths."""
        user_root = self._storage.resolve(self._base)
        descoped = []
        for p in host_paths:
            if not is_within(user_root, p):
                raise OperationError(PathBreaksOut(item_name(p)))
            descoped.append(relative_to(user_root, p))
        return descoped

    # ------------------------------------------------------------------
    # User root lifecycle
    # ------------------------------------------------------------------

    async def ensure_root(self) -> None:
        """Create the user directory if missing, deploying the template if set.

        Raises ``OperationError`` on failure.  A failed template deployment
        leaves no directory behind, so the next call tries again.
        """
        user_root = self._storage.resolve(self._base)
        host = self._storage.host
        if await asyncio.to_thread(host.is_dir, user_root):
            return

        if self._storage.template_path is not None:
            logger.debug("User %d: deploying template", self._user_id)
            result: CopyResult | MkdirResult = await self._storage.deploy_template(self._base)
        else:
            logger.debug("User %d: creating empty user directory", self._user_id)
            result = await self._storage.create_dir(self._base)

        if result.success:
            return
        error = result.error
        if (
            isinstance(error, HostIOFailure)
            and error.kind is HostErrorKind.ALREADY_EXISTS
            and await asyncio.to_thread(host.is_dir, user_root)
        ):
            return
        raise OperationError(error)

    async def _check_capacity(self, incoming: int) -> None:
        capacity = self._storage.userspace_size
        if capacity is None:
            return
        usage = await self._storage.measure(self._base, capacity)
        if not usage.success:
            raise OperationError(usage.error)
        if usage.used + incoming > capacity:
            logger.warning(
                "User %d: refused %d bytes, %d of %d bytes used",
                self._user_id,
                incoming,
                usage.used,
                capacity,
            )
            raise OperationError(
                NotEnoughStorage(required=incoming, available=max(0, capacity - usage.used))
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def quota(self) -> QuotaResult:
        """Bytes used by this user against the per-user capacity."""
        try:
            await self.ensure_root()
        except OperationError as e:
            return failure(QuotaResult, e.error, capacity=self._storage.userspace_size)
        return await self._storage.measure(self._base, self._storage.userspace_size)

    async def create_dir(self, path: str | bytes, *, parents: bool = False) -> MkdirResult:
        try:
            target = self.scoped(path)
            await self.ensure_root()
        except OperationError as e:
            return failure(MkdirResult, e.error)
        result = await self._storage.create_dir(target, parents=parents)
        if not result.success:
            return result
        rel = self._unscoped(result.path)
        return dataclasses.replace(result, path=rel, message=f"Created directory: {rel}")

    async def remove_item(self, path: str | bytes) -> DeleteResult:
        try:
            target = self._scoped_below_base(path)
            await self.ensure_root()
        except OperationError as e:
            return failure(DeleteResult, e.error)
        result = await self._storage.remove_item(target)
        if not result.success:
            return result
        rel = self._unscoped(result.path)
        return dataclasses.replace(result, path=rel, message=f"Deleted: {rel}")

    async def move_item(self, source: str | bytes, target: str | bytes) -> MoveResult:
        try:
            src = self._scoped_below_base(source)
            dest = self._scoped_below_base(target)
            await self.ensure_root()
        except OperationError as e:
            return failure(MoveResult, e.error)
        result = await self._storage.move_item(src, dest)
        if not result.success:
            return result
        old, new = self._unscoped(result.old_path), self._unscoped(result.new_path)
        return dataclasses.replace(
            result, old_path=old, new_path=new, message=f"Moved {old} to {new}"
        )

    async def copy_item(self, source: str | bytes, target: str | bytes) -> CopyResult:
        """Copy within the user directory, subject to both quotas."""
        try:
            src = self.scoped(source)
            dest = self._scoped_below_base(target)
            await self.ensure_root()
        except OperationError as e:
            return failure(CopyResult, e.error)

        async with self._storage.guard.hold(self._base, self._storage.userspace_size):
            try:
                if self._storage.userspace_size is not None:
                    size = await self._storage.get_item_size(src)
                    if not size.success:
                        raise OperationError(size.error)
                    await self._check_capacity(size.size_bytes)
            except OperationError as e:
                return failure(CopyResult, e.error)
            result = await self._storage.copy_item(src, dest)

        if not result.success:
            return result
        old, new = self._unscoped(result.source), self._unscoped(result.target)
        return dataclasses.replace(
            result,
            source=old,
            target=new,
            message=f"Copied {old} to {new} ({result.files_copied} files)",
        )

    async def read_file(self, path: str | bytes) -> ReadResult:
        try:
            target = self.scoped(path)
            await self.ensure_root()
        except OperationError as e:
            return failure(ReadResult, e.error)
        result = await self._storage.read_file(target)
        if not result.success:
            return result
        rel = self._unscoped(result.path)
        return dataclasses.replace(
            result, path=rel, message=f"Read {len(result.content or b''):,} bytes from {rel}"
        )

    async def write_file(self, path: str | bytes, data: bytes) -> WriteResult:
        """Write a whole file, subject to the per-user and global quotas."""
        try:
            target = self._scoped_below_base(path)
            await self.ensure_root()
        except OperationError as e:
            return failure(WriteResult, e.error)

        async with self._storage.guard.hold(self._base, self._storage.userspace_size):
            try:
                await self._check_capacity(len(data))
            except OperationError as e:
                return failure(WriteResult, e.error)
            result = await self._storage.write_file(target, data)

        if not result.success:
            return result
        rel = self._unscoped(result.path)
        return dataclasses.replace(
            result, path=rel, message=f"{'Created' if result.created else 'Updated'}: {rel}"
        )

    async def list_dir(self, path: str | bytes) -> ListResult:
        """List a directory; returned paths are relative to the user directory."""
        try:
            target = self.scoped(path)
            await self.ensure_root()
        except OperationError as e:
            return failure(ListResult, e.error)
        result = await self._storage.list_dir(target)
        if not result.success:
            return result
        try:
            files = self._descope(result.files)
            directories = self._descope(result.directories)
        except OperationError as e:
            return failure(ListResult, e.error)
        rel = self._unscoped(result.path) or "."
        return dataclasses.replace(
            result,
            path=rel,
            files=files,
            directories=directories,
            message=f"Listed {len(files) + len(directories)} items in {rel}",
        )

    async def get_mime(self, path: str | bytes) -> MimeResult:
        try:
            target = self.scoped(path)
            await self.ensure_root()
        except OperationError as e:
            return failure(MimeResult, e.error)
        result = await self._storage.get_mime(target)
        if not result.success:
            return result
        rel = self._unscoped(result.path)
        return dataclasses.replace(
            result, path=rel, message=f"{rel}: {result.mime_type or 'unknown type'}"
        )

    async def get_item_size(self, path: str | bytes) -> SizeResult:
        try:
            target = self.scoped(path)
            await self.ensure_root()
        except OperationError as e:
            return failure(SizeResult, e.error)
        result = await self._storage.get_item_size(target)
        if not result.success:
            return result
        rel = self._unscoped(result.path)
        return dataclasses.replace(
            result, path=rel, message=f"{rel}: {result.size_bytes:,} bytes"
        )

    async def get_item_time_info(self, path: str | bytes) -> TimeInfoResult:
        try:
            target = self.scoped(path)
            await self.ensure_root()
        except OperationError as e:
            return failure(TimeInfoResult, e.error)
        result = await self._storage.get_item_time_info(target)
        if not result.success:
            return result
        rel = self._unscoped(result.path)
        return dataclasses.replace(result, path=rel, message=f"Time info for {rel}")

    async def get_dir_tree(self, path: str | bytes = ".") -> TreeResult:
        """Every file below *path*, relative to the user directory."""
        try:
            target = self.scoped(path)
            await self.ensure_root()
        except OperationError as e:
            return failure(TreeResult, e.error)
        result = await self._storage.get_dir_tree(target)
        if not result.success:
            return result
        try:
            files = self._descope(result.files)
        except OperationError as e:
            return failure(TreeResult, e.error)
        rel = self._unscoped(result.path) or "."
        return dataclasses.replace(
            result, path=rel, files=files, message=f"Found {len(files)} files below {rel}"
        )

    async def get_info(self, path: str | bytes) -> InfoResult:
        try:
            target = self.scoped(path)
            await self.ensure_root()
        except OperationError as e:
            return failure(InfoResult, e.error)
        result = await self._storage.get_info(target)
        if not result.success or result.info is None:
            return result
        rel = self._unscoped(result.info.path) or "."
        info = dataclasses.replace(result.info, path=rel, name=item_name(rel))
        return dataclasses.replace(result, info=info, message=f"Info for {rel}")
