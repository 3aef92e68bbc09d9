"""Remote expense platform client."""

from expenses.auth import SettingsTokenProvider, TokenProvider
from expenses.client import ExpenseApiClient, ExpenseCollaborator, create_remote_expense
from expenses.errors import (
    ExpenseApiError,
    ExpenseAuthError,
    ExpenseError,
    ExpenseNetworkError,
    ExpenseValidationError,
)

__all__ = [
    "ExpenseApiClient",
    "ExpenseApiError",
    "ExpenseAuthError",
    "ExpenseCollaborator",
    "ExpenseError",
    "ExpenseNetworkError",
    "ExpenseValidationError",
    "SettingsTokenProvider",
    "TokenProvider",
    "create_remote_expense",
]
