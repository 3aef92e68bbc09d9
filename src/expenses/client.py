"""Expense platform API client built on the shared HTTP transport."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

import httpx

from config import settings
from expenses.auth import SettingsTokenProvider, TokenProvider
from expenses.errors import (
    ExpenseApiError,
    ExpenseAuthError,
    ExpenseNetworkError,
    ExpenseValidationError,
)
from services.http_client import HttpClient, HttpRequestError, RetryConfig

logger = logging.getLogger(__name__)

_AUTH_STATUS_CODES = {401, 403}
_VALIDATION_STATUS_CODES = {400, 409, 422}


class ExpenseCollaborator(Protocol):
    """Protocol for the three-step remote expense creation contract."""

    def create_draft(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Create a draft record and return a body carrying its ``id``."""
        ...

    def finalize(self, expense_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Write the complete payload onto the draft."""
        ...

    def submit(self, expense_id: str) -> dict[str, Any]:
        """Move the draft out of draft state."""
        ...


class ExpenseApiClient:
    """Synchronous client for the manual expense creation endpoints.

    Transport retries and timeouts come from the wrapped :class:`HttpClient`.
    Failures are mapped onto the ``expenses.errors`` hierarchy with the number
    of attempts the transport made.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        token_provider: TokenProvider | None = None,
        http_client: HttpClient | None = None,
    ) -> None:
        self._base_url = (base_url or settings.expenses.base_url).rstrip("/")
        self._token_provider = token_provider or SettingsTokenProvider()
        self._http = http_client or HttpClient(retry_config=RetryConfig.from_settings())

    def create_draft(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        body = self._request("POST", "/expenses/manual", json=dict(payload))
        expense_id = body.get("uuid") or body.get("id")
        if not expense_id:
            raise ExpenseValidationError("No expense ID returned from draft creation.")
        return {**body, "id": str(expense_id)}

    def finalize(self, expense_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        return self._request("PATCH", f"/expenses/{expense_id}", json=dict(payload))

    def submit(self, expense_id: str) -> dict[str, Any]:
        return self._request("POST", f"/expenses/{expense_id}/submit", json={})

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        token = self._token_provider.get_valid_token()
        if token is None:
            raise ExpenseAuthError("No valid expense API token available.", attempts=0)

        headers = {
            "Authorization": token,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        url = f"{self._base_url}{path}"
        try:
            response = self._http.request(method, url, headers=headers, **kwargs)
        except HttpRequestError as exc:
            raise _classify(exc) from exc

        if response is None:
            raise ExpenseNetworkError(f"{method} {path} returned no response.")
        return _decode(response, method, path)


def create_remote_expense(collaborator: ExpenseCollaborator, payload: Mapping[str, Any]) -> str:
    """Run draft, finalize and submit in order and return the remote id.

    A payload flagged ``isDraft`` is left in draft state after finalizing.
    A failure at any step aborts the remaining steps.
    """
    draft = collaborator.create_draft(payload)
    expense_id = str(draft["id"])
    logger.debug("Expense draft created: expense_id=%s", expense_id)

    collaborator.finalize(expense_id, payload)
    if payload.get("isDraft"):
        logger.info("Expense kept in draft state: expense_id=%s", expense_id)
        return expense_id

    collaborator.submit(expense_id)
    logger.info("Expense submitted: expense_id=%s", expense_id)
    return expense_id


def _decode(response: httpx.Response, method: str, path: str) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError as exc:
        raise ExpenseValidationError(f"{method} {path} returned invalid JSON.") from exc
    if not isinstance(body, dict):
        raise ExpenseValidationError(f"{method} {path} returned a non-object body.")
    # Some API versions wrap the record in a data envelope.
    data = body.get("data")
    if isinstance(data, dict) and ("id" in data or "uuid" in data):
        return data
    return body


def _classify(exc: HttpRequestError):
    """Map a transport failure onto the expense error hierarchy."""
    status_code = exc.status_code
    if status_code is None:
        return ExpenseNetworkError(str(exc), attempts=exc.attempts, timed_out=exc.timed_out)
    if status_code in _AUTH_STATUS_CODES:
        return ExpenseAuthError(f"Authentication failed ({status_code}).", attempts=exc.attempts)
    if status_code in _VALIDATION_STATUS_CODES:
        detail = (exc.response_text or "").strip()[:200]
        message = f"Expense rejected ({status_code})"
        return ExpenseValidationError(
            f"{message}: {detail}" if detail else f"{message}.",
            attempts=exc.attempts,
        )
    return ExpenseApiError(
        str(exc),
        status_code,
        attempts=exc.attempts,
        response_text=exc.response_text,
    )
