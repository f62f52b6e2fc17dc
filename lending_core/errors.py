"""Domain exception hierarchy for lending operations."""


class LendingError(Exception):
    """Base exception for all lending errors."""


class ValidationError(LendingError, ValueError):
    """Raised when input is malformed or out of range."""


class InvalidStateError(LendingError):
    """Raised when a transition is attempted from the wrong loan status."""


class NotFoundError(LendingError, LookupError):
    """Raised when a referenced loan, payment or user does not exist."""


class PermissionDeniedError(LendingError, PermissionError):
    """Raised when the acting role may not perform an operation."""


class ConfigurationError(LendingError):
    """Raised when configuration is invalid or missing."""
