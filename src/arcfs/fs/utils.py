"""Path utilities, OS error classification, MIME guessing."""

from __future__ import annotations

import errno
import mimetypes
import posixpath

from .types import HostErrorKind


# =============================================================================
# Path Utilities
# =============================================================================


def decode_path(path: str | bytes) -> tuple[str | None, str]:
    """Turn a caller-supplied path into text.

    Returns:
        (text, error_message) - text is None when the path is unusable
    """
    if isinstance(path, bytes):
        try:
            path = path.decode("utf-8")
        except UnicodeDecodeError as e:
            return None, str(e)

    try:
        path.encode("utf-8")
    except UnicodeEncodeError as e:
        return None, str(e)

    if "\x00" in path:
        return None, "Path contains null bytes"

    return path, ""


def normalize_path(path: str) -> str:
    """Lexically normalize a relative logical path.

    Leading slashes are dropped so that the result is always relative.
    The result may start with ``..`` if the path climbs out.

    Examples:
        normalize_path("") -> "."
        normalize_path("/docs//a.txt") -> "docs/a.txt"
        normalize_path("docs/../a.txt") -> "a.txt"
        normalize_path("../../etc/passwd") -> "../../etc/passwd"
    """
    rel = path.lstrip("/")
    if not rel:
        return "."
    return posixpath.normpath(rel)


def is_within(root: str, path: str) -> bool:
    """Check that normalized absolute *path* equals *root* or lies below it."""
    if path == root:
        return True
    return path.startswith(root.rstrip("/") + "/")


def join_within(root: str, path: str) -> str | None:
    """Join a logical path onto *root* and normalize it.

    Returns None when the normalized result would leave *root*.
    """
    rel = normalize_path(path)
    if rel == ".":
        return root
    candidate = posixpath.normpath(posixpath.join(root, rel))
    if not is_within(root, candidate):
        return None
    return candidate


def relative_to(root: str, path: str) -> str:
    """Strip *root* from an absolute *path* below it ("." for the root itself)."""
    if path == root:
        return "."
    return path[len(root.rstrip("/")) + 1 :]


def item_name(path: str) -> str:
    """Final component of *path*, "." when there is none."""
    name = posixpath.basename(path.rstrip("/"))
    return name if name and name != ".." else "."


def guess_mime_type(filename: str) -> str | None:
    """Guess the MIME type of a file based on its name."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type


# =============================================================================
# OS Error Classification
# =============================================================================

_ERRNO_KINDS = {
    errno.ENOENT: HostErrorKind.NOT_FOUND,
    errno.EEXIST: HostErrorKind.ALREADY_EXISTS,
    errno.ENOTEMPTY: HostErrorKind.ALREADY_EXISTS,
    errno.ENOTDIR: HostErrorKind.NOT_A_DIRECTORY,
    errno.EISDIR: HostErrorKind.IS_A_DIRECTORY,
    errno.EACCES: HostErrorKind.PERMISSION_DENIED,
    errno.EPERM: HostErrorKind.PERMISSION_DENIED,
}


def classify_os_error(exc: OSError) -> HostErrorKind:
    """Map an OSError onto a HostErrorKind."""
    if isinstance(exc, FileNotFoundError):
        return HostErrorKind.NOT_FOUND
    if isinstance(exc, FileExistsError):
        return HostErrorKind.ALREADY_EXISTS
    if isinstance(exc, NotADirectoryError):
        return HostErrorKind.NOT_A_DIRECTORY
    if isinstance(exc, IsADirectoryError):
        return HostErrorKind.IS_A_DIRECTORY
    if isinstance(exc, PermissionError):
        return HostErrorKind.PERMISSION_DENIED
    return _ERRNO_KINDS.get(exc.errno, HostErrorKind.OTHER)
