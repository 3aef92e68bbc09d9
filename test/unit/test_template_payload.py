"""Unit tests for building remote creation payloads."""

from __future__ import annotations

from datetime import date

import pytest

from templates.payload import PayloadValidationError, build_payload, validate_payload

SNAPSHOT = {
    "merchant": "Gym",
    "merchantAmount": "49.99",
    "merchantCurrency": "EUR",
}


def test_build_payload_defaults_date_to_firing_date() -> None:
    """Missing dates are filled with the local firing date."""
    payload = build_payload(SNAPSHOT, date(2025, 6, 1))

    assert payload["date"] == "2025-06-01"
    assert "date" not in SNAPSHOT


def test_build_payload_keeps_explicit_date_after_substitution() -> None:
    """A templated date is substituted rather than replaced."""
    payload = build_payload({**SNAPSHOT, "date": "{year}-{month}-01"}, date(2025, 6, 17))

    assert payload["date"] == "2025-06-01"


def test_build_payload_normalizes_legacy_policy() -> None:
    """Legacy policy values become policyType."""
    assert build_payload({**SNAPSHOT, "policy": {"id": "p-1"}}, date(2025, 1, 1))["policyType"] == "p-1"
    assert build_payload({**SNAPSHOT, "policy": "p-2"}, date(2025, 1, 1))["policyType"] == "p-2"


def test_build_payload_prefers_existing_policy_type() -> None:
    """An explicit policyType wins over the legacy field."""
    payload = build_payload(
        {**SNAPSHOT, "policy": "old", "policyType": "new"}, date(2025, 1, 1)
    )

    assert payload["policyType"] == "new"
    assert "policy" not in payload


@pytest.mark.parametrize("field", ["merchant", "merchantAmount", "merchantCurrency"])
def test_validate_payload_reports_missing_fields(field: str) -> None:
    """Each required field is checked."""
    payload = {**SNAPSHOT, "date": "2025-01-01"}
    payload[field] = ""

    with pytest.raises(PayloadValidationError) as exc_info:
        validate_payload(payload)

    assert exc_info.value.missing == [field]


def test_validate_payload_rejects_non_numeric_amount() -> None:
    """Amounts must parse as numbers."""
    with pytest.raises(PayloadValidationError, match="number"):
        validate_payload({**SNAPSHOT, "merchantAmount": "lots"})

    with pytest.raises(PayloadValidationError):
        validate_payload({**SNAPSHOT, "merchantAmount": True})
