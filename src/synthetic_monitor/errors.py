"""Exceptions raised by the synthetic test engine."""

from typing import Any


class MonitorError(Exception):
    """Base class for all synthetic monitor errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON responses and logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(MonitorError):
    """A test, API, node or node group does not exist."""

    def __init__(self, kind: str, identifier: int | str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(
            f"{kind} not found: {identifier}",
            {"kind": kind, "id": identifier},
        )


class ValidationError(MonitorError):
    """Input was rejected before any execution took place."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = errors or [message]
        super().__init__(message, {"errors": self.errors})


class NoTargetsAvailable(MonitorError):
    """A synthetic test resolved to zero live nodes."""


class ProbeFailure(MonitorError):
    """A single network call failed (connection error, timeout or bad status)."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        self.status_code = status_code
        super().__init__(message, {"status_code": status_code})


class PersistenceFailure(MonitorError):
    """Reading from or writing to the history store failed."""


class ParameterDecodeError(MonitorError):
    """A stored input payload could not be decoded into parameters."""
