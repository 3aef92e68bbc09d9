"""Expense template persistence and payload building."""

from templates.history import ExecutionHistoryStore
from templates.payload import PayloadValidationError, build_payload
from templates.repository import TemplateNotFoundError, TemplateRepository
from templates.variables import substitute_variables

__all__ = [
    "ExecutionHistoryStore",
    "PayloadValidationError",
    "TemplateNotFoundError",
    "TemplateRepository",
    "build_payload",
    "substitute_variables",
]
