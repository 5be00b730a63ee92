"""Exceptions raised by the streak service layer."""


class StreakError(Exception):
    """Base class for streak failures surfaced to callers."""


class StreakValidationError(StreakError, ValueError):
    """Raised when a request is rejected before touching the store."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class StreakConflictError(StreakError):
    """Raised when a streak transaction lost a race with a concurrent writer.

    Transient: the facade retries a bounded number of times before letting
    this propagate.
    """


class StoreUnavailableError(StreakError):
    """Raised when the streak store cannot be reached."""
