"""Classified errors raised by the expense API client."""

from __future__ import annotations


class ExpenseError(Exception):
    """Base error for remote expense operations.

    ``attempts`` is the number of transport attempts made before the error
    was raised, so ``attempts - 1`` is the retry count.
    """

    def __init__(self, message: str, *, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class ExpenseAuthError(ExpenseError):
    """Raised when no valid token is available or the API rejects it."""


class ExpenseValidationError(ExpenseError):
    """Raised when the API rejects a payload or returns an unusable body."""


class ExpenseApiError(ExpenseError):
    """Raised for non-auth, non-validation HTTP error responses."""

    def __init__(
        self,
        message: str,
        status_code: int,
        *,
        attempts: int = 1,
        response_text: str | None = None,
    ) -> None:
        super().__init__(message, attempts=attempts)
        self.status_code = status_code
        self.response_text = response_text


class ExpenseNetworkError(ExpenseError):
    """Raised when the API cannot be reached or times out."""

    def __init__(self, message: str, *, attempts: int = 1, timed_out: bool = False) -> None:
        super().__init__(message, attempts=attempts)
        self.timed_out = timed_out
