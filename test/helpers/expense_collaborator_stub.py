"""Recording expense collaborator stub."""

from __future__ import annotations

from typing import Any, Mapping


class StubExpenseCollaborator:
    """Collaborator stub that records calls and raises configured errors."""

    def __init__(
        self,
        *,
        expense_id: str = "exp-1",
        errors: dict[str, Exception] | None = None,
    ) -> None:
        """Initialize with the draft id to return and per-step errors."""
        self.expense_id = expense_id
        self.errors = errors or {}
        self.calls: list[tuple[str, Any]] = []

    def create_draft(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_draft", dict(payload)))
        self._raise_if_configured("create_draft")
        return {"id": self.expense_id, "status": "draft"}

    def finalize(self, expense_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("finalize", expense_id))
        self._raise_if_configured("finalize")
        return {"status": "draft"}

    def submit(self, expense_id: str) -> dict[str, Any]:
        self.calls.append(("submit", expense_id))
        self._raise_if_configured("submit")
        return {"status": "submitted"}

    @property
    def steps(self) -> list[str]:
        """Return the called step names in order."""
        return [name for name, _ in self.calls]

    def _raise_if_configured(self, step: str) -> None:
        error = self.errors.get(step)
        if error is not None:
            raise error
