"""Modpack-specific exceptions.

Every failure raised by the library derives from PackError, so apps can catch one
type at the command boundary and still branch on the specific category.
"""


class PackError(Exception):
    """Base exception for modpack operations."""

    def __init__(self, message: str, context: dict | None = None):
        """Initialize with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dict with additional context (file paths, slugs, handles, etc.)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class PackNotFoundError(PackError):
    """A file, record or remote handle does not exist."""


class UnsupportedError(PackError):
    """Unknown hash algorithm, loader, source or pack format."""


class MalformedError(PackError):
    """Corrupt on-disk data or an invalid descriptor."""


class ExternalSourceError(PackError):
    """A registry or network request failed."""


class IntegrityError(PackError):
    """Dependency resolution exceeded its ceiling, or a hash did not verify."""


class InvalidOperationError(PackError):
    """The operation is not allowed in the current state (pinned record, ambiguous match)."""
