"""Build the remote creation payload from a template snapshot."""

from __future__ import annotations

import copy
from datetime import date
from typing import Any

from templates.variables import substitute_variables

REQUIRED_FIELDS = ("merchantAmount", "merchantCurrency", "merchant")


class PayloadValidationError(Exception):
    """Raised when a built payload is missing required fields."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


def build_payload(snapshot: dict[str, Any], on: date) -> dict[str, Any]:
    """Return a validated payload for a firing on the given local date.

    Placeholders are substituted, ``date`` defaults to the firing date and a
    legacy ``policy`` value is normalized into ``policyType``.
    """
    payload = substitute_variables(copy.deepcopy(snapshot), on)
    if not payload.get("date"):
        payload["date"] = on.isoformat()

    policy = payload.pop("policy", None)
    if policy is not None and "policyType" not in payload:
        if isinstance(policy, dict):
            policy = policy.get("id")
        if policy:
            payload["policyType"] = str(policy)

    validate_payload(payload)
    return payload


def validate_payload(payload: dict[str, Any]) -> None:
    """Raise PayloadValidationError when required fields are missing."""
    missing = [field for field in REQUIRED_FIELDS if _is_missing(payload.get(field))]
    if missing:
        raise PayloadValidationError(
            f"Missing required fields: {', '.join(missing)}",
            missing,
        )

    amount = payload["merchantAmount"]
    if isinstance(amount, bool) or not isinstance(amount, (int, float, str)):
        raise PayloadValidationError("merchantAmount must be a number.", ["merchantAmount"])
    try:
        float(amount)
    except ValueError as exc:
        raise PayloadValidationError(
            "merchantAmount must be a number.", ["merchantAmount"]
        ) from exc


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, dict, list)) and not value:
        return True
    return False
