"""Exception hierarchy for snapshot versioning operations."""


class VersioningError(Exception):
    """Base class for all versioning failures."""

    pass


class VersioningIoError(VersioningError):
    """Reading the working directory or writing the version store failed."""

    pass


class ObjectStoreError(VersioningError):
    """Object data is malformed, unreadable, or missing where it is referenced.

    The store cannot repair itself; the operation that hit this is abandoned.
    """

    pass


class NotFoundError(VersioningError):
    """Unknown commit id, timeline, or file path at a given version."""

    pass


class InvalidOperationError(VersioningError):
    """The request is well formed but not allowed in the current state."""

    pass
