"""Filesystem layer — storage root, per-user scopes, host backends."""

from arcfs.fs.config import StorageConfig
from arcfs.fs.exceptions import (
    ArcFSError,
    ConfigurationError,
    OperationError,
    StorageRootError,
)
from arcfs.fs.host import (
    HostEntry,
    HostFileSystem,
    HostStat,
    LocalHostFileSystem,
    walk_tree,
)
from arcfs.fs.memory import MemoryHostFileSystem
from arcfs.fs.quota import QuotaGuard
from arcfs.fs.storage_root import StorageRoot
from arcfs.fs.types import (
    CopyResult,
    DeleteResult,
    ErrorCategory,
    FSError,
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
)
from arcfs.fs.user_scope import UserScope

__all__ = [
    "ArcFSError",
    "ConfigurationError",
    "CopyResult",
    "DeleteResult",
    "ErrorCategory",
    "FSError",
    "HostEntry",
    "HostErrorKind",
    "HostFileSystem",
    "HostIOFailure",
    "HostStat",
    "InfoResult",
    "InvalidPathEncoding",
    "ItemInfo",
    "ListResult",
    "LocalHostFileSystem",
    "MemoryHostFileSystem",
    "MimeResult",
    "MkdirResult",
    "MoveResult",
    "NotEnoughStorage",
    "OperationError",
    "PathBreaksOut",
    "QuotaGuard",
    "QuotaResult",
    "ReadResult",
    "SizeResult",
    "StorageConfig",
    "StorageRoot",
    "StorageRootError",
    "TimeInfoResult",
    "TreeResult",
    "UserScope",
    "WriteResult",
    "walk_tree",
]
