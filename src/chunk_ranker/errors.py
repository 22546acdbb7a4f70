"""Error types for the chunk ranking pipeline."""

from typing import Any, Optional


class RankerError(Exception):
    """Base class for all chunk ranker errors."""

    pass


class ConfigurationError(RankerError):
    """
    Raised when a configuration value is out of range.

    Raised at configuration-build time, never while scoring.

    Attributes:
        field: Name of the offending configuration field
        value: The rejected value
    """

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


class PersistenceError(RankerError):
    """Raised when the feedback store cannot be read from or written to disk."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class FeedbackFileNotFoundError(PersistenceError):
    """The feedback file does not exist. Recoverable: callers start fresh."""

    pass


class EmbeddingError(RankerError):
    """Raised by embedding collaborators on empty input or backend failure."""

    pass
