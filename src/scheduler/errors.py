"""Exception hierarchy for template scheduling."""

from __future__ import annotations


class SchedulerError(Exception):
    """Base exception for scheduling failures."""

    def __init__(self, code: str, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize the error with a machine-readable code and details."""
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ScheduleValidationError(SchedulerError):
    """Raised when a schedule rule fails validation."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize a validation error with optional details."""
        super().__init__("validation_error", message, details)


class ScheduleConfigurationError(ScheduleValidationError):
    """Raised when a rule lacks the recurrence payload its kind requires."""


class TimerServiceError(SchedulerError):
    """Raised by platform timer backends when an operation fails."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize a timer backend error with optional details."""
        super().__init__("timer_service_error", message, details)


class TimerRegistrationError(SchedulerError):
    """Raised when a wake-up cannot be registered after a retry."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize a registration error with optional details."""
        super().__init__("timer_registration_error", message, details)
