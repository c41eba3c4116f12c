class CoachError(Exception):
    """Base class for every error raised by the engcoach services."""


class ValidationError(CoachError, ValueError):
    """Measurement inputs are incomplete or out of domain for a formula."""

    def __init__(self, message: str, *, method: str | None = None, missing: list[str] | None = None):
        super().__init__(message)
        self.method = method
        self.missing = list(missing or [])


class SessionError(CoachError):
    """A workout-session operation was invoked from the wrong state."""


class SetInFlightError(SessionError):
    """A write for the same (exercise instance, set) is still outstanding."""


class PersistenceError(CoachError):
    """The database rejected or failed a write or read."""


class NotFoundError(CoachError, LookupError):
    """A referenced workout, athlete or record does not exist."""
