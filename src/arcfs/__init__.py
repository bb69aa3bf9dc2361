"""arcfs: sandboxed per-user storage.

A shared storage root with path containment and quotas, and isolated
per-user views on top of it.
"""

__version__ = "0.1.0"

from arcfs.fs import (
    ArcFSError,
    ConfigurationError,
    ErrorCategory,
    FSError,
    HostErrorKind,
    HostFileSystem,
    HostIOFailure,
    InvalidPathEncoding,
    LocalHostFileSystem,
    MemoryHostFileSystem,
    NotEnoughStorage,
    PathBreaksOut,
    StorageConfig,
    StorageRoot,
    StorageRootError,
    UserScope,
)

__all__ = [
    "ArcFSError",
    "ConfigurationError",
    "ErrorCategory",
    "FSError",
    "HostErrorKind",
    "HostFileSystem",
    "HostIOFailure",
    "InvalidPathEncoding",
    "LocalHostFileSystem",
    "MemoryHostFileSystem",
    "NotEnoughStorage",
    "PathBreaksOut",
    "StorageConfig",
    "StorageRoot",
    "StorageRootError",
    "UserScope",
    "__version__",
]
