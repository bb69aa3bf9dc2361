"""Exception hierarchy for fatal arcfs conditions.

Expected failures (missing items, containment violations, quota) are not
raised; they travel on result objects as ``FSError`` values (see ``types``).
"""


class ArcFSError(Exception):
    """Base exception for all arcfs errors."""


class StorageRootError(ArcFSError):
    """Raised when the storage root or template cannot be used."""


class ConfigurationError(ArcFSError):
    """Raised when storage configuration is missing or malformed."""


class OperationError(ArcFSError):
    """Carries an expected ``FSError`` out of a helper.

    Raised by path resolution and quota checks; every public operation
    catches it and returns the wrapped failure on its result object.
    """

    def __init__(self, error: object) -> None:
        super().__init__(str(error))
        self.error = error
