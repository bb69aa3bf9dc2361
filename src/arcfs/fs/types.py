"""Typed failures and result types: ReadResult, WriteResult, ListResult, etc."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from datetime import datetime


# =============================================================================
# Failures
# =============================================================================


class HostErrorKind(str, Enum):
    """Classification of an OS-level failure."""

    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    NOT_A_DIRECTORY = "not_a_directory"
    IS_A_DIRECTORY = "is_a_directory"
    PERMISSION_DENIED = "permission_denied"
    OTHER = "other"


class ErrorCategory(str, Enum):
    """Response category a request layer should map a failure to."""

    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORAGE_EXHAUSTED = "storage_exhausted"
    INTERNAL = "internal"


_STATUS_CODES = {
    ErrorCategory.BAD_REQUEST: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.STORAGE_EXHAUSTED: 413,
    ErrorCategory.INTERNAL: 500,
}


@dataclass(frozen=True)
class FSError:
    """Base for every expected, recoverable filesystem failure."""

    @property
    def message(self) -> str:
        return "filesystem error"

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory.INTERNAL

    @property
    def status_code(self) -> int:
        """HTTP status matching :attr:`category`."""
        return _STATUS_CODES[self.category]

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class HostIOFailure(FSError):
    """An OS call failed; ``kind`` says how."""

    kind: HostErrorKind
    detail: str = ""

    @property
    def message(self) -> str:
        if self.kind is HostErrorKind.NOT_FOUND:
            return "Item at such path does not exist"
        if self.kind is HostErrorKind.ALREADY_EXISTS:
            return "Item at such path already exists"
        return f"Host filesystem error ({self.kind.value}): {self.detail}"

    @property
    def category(self) -> ErrorCategory:
        if self.kind is HostErrorKind.NOT_FOUND:
            return ErrorCategory.NOT_FOUND
        if self.kind is HostErrorKind.ALREADY_EXISTS:
            return ErrorCategory.CONFLICT
        return ErrorCategory.INTERNAL


@dataclass(frozen=True)
class PathBreaksOut(FSError):
    """The resolved path would leave its root."""

    path: str = ""

    @property
    def message(self) -> str:
        return f"Path escapes its root: {self.path!r}"

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory.BAD_REQUEST


@dataclass(frozen=True)
class InvalidPathEncoding(FSError):
    """The path is not representable as UTF-8 (or carries NUL bytes)."""

    detail: str = ""

    @property
    def message(self) -> str:
        return f"Path is not a valid UTF-8 string: {self.detail}"

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory.BAD_REQUEST


@dataclass(frozen=True)
class NotEnoughStorage(FSError):
    """A write or copy would exceed the configured capacity."""

    required: int = 0
    available: int = 0

    @property
    def message(self) -> str:
        return (
            f"Not enough storage: {self.required:,} bytes required, "
            f"{self.available:,} bytes available"
        )

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory.STORAGE_EXHAUSTED


# =============================================================================
# Results
# =============================================================================


@dataclass
class ItemInfo:
    """File/directory metadata."""

    path: str
    name: str
    is_directory: bool
    size_bytes: int = 0
    mime_type: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None


@dataclass
class MkdirResult:
    """Result of a create_dir operation."""

    success: bool
    message: str
    path: str | None = None
    error: FSError | None = None


@dataclass
class DeleteResult:
    """Result of a remove_item operation."""

    success: bool
    message: str
    path: str | None = None
    error: FSError | None = None


@dataclass
class MoveResult:
    """Result of a move_item operation."""

    success: bool
    message: str
    old_path: str | None = None
    new_path: str | None = None
    error: FSError | None = None


@dataclass
class CopyResult:
    """Result of a copy_item operation."""

    success: bool
    message: str
    source: str | None = None
    target: str | None = None
    files_copied: int = 0
    error: FSError | None = None


@dataclass
class ReadResult:
    """Result of a read_file operation."""

    success: bool
    message: str
    path: str | None = None
    content: bytes | None = None
    error: FSError | None = None


@dataclass
class WriteResult:
    """Result of a write_file operation."""

    success: bool
    message: str
    path: str | None = None
    created: bool = False
    size_bytes: int = 0
    error: FSError | None = None


@dataclass
class ListResult:
    """Result of a list_dir operation."""

    success: bool
    message: str
    path: str = "."
    files: list[str] = field(default_factory=list)
    directories: list[str] = field(default_factory=list)
    error: FSError | None = None


@dataclass
class TreeResult:
    """Result of a get_dir_tree operation: every file below ``path``."""

    success: bool
    message: str
    path: str = "."
    files: list[str] = field(default_factory=list)
    error: FSError | None = None


@dataclass
class MimeResult:
    """Result of a get_mime operation."""

    success: bool
    message: str
    path: str | None = None
    mime_type: str | None = None
    error: FSError | None = None


@dataclass
class SizeResult:
    """Result of a get_item_size operation."""

    success: bool
    message: str
    path: str | None = None
    size_bytes: int = 0
    error: FSError | None = None


@dataclass
class TimeInfoResult:
    """Result of a get_item_time_info operation."""

    success: bool
    message: str
    path: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None
    error: FSError | None = None


@dataclass
class InfoResult:
    """Result of a get_info operation."""

    success: bool
    message: str
    info: ItemInfo | None = None
    error: FSError | None = None


@dataclass
class QuotaResult:
    """Storage usage of a scope against its capacity (``None`` = unlimited)."""

    success: bool
    message: str
    used: int = 0
    capacity: int | None = None
    error: FSError | None = None

    @property
    def free(self) -> int | None:
        if self.capacity is None:
            return None
        return max(0, self.capacity - self.used)


R = TypeVar("R")


def failure(result_cls: type[R], error: FSError | None, **fields: Any) -> R:
    """Build a failed result of *result_cls* carrying *error*."""
    return result_cls(  # type: ignore[call-arg]
        success=False,
        message=error.message if error is not None else "operation failed",
        error=error,
        **fields,
    )
