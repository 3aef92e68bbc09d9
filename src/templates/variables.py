"""Date placeholder substitution for template snapshots."""

from __future__ import annotations

import re
from datetime import date
from typing import Any

_TOKEN_PATTERN = re.compile(r"\{([a-z_]+)\}")


def variable_values(on: date) -> dict[str, str]:
    """Return the substitution table for a local calendar date."""
    return {
        "date": on.isoformat(),
        "day": f"{on.day:02d}",
        "month": f"{on.month:02d}",
        "month_name": on.strftime("%B"),
        "month_short": on.strftime("%b"),
        "year": str(on.year),
        "quarter": f"Q{(on.month - 1) // 3 + 1}",
        "week": f"{on.isocalendar()[1]:02d}",
    }


def substitute_variables(value: Any, on: date) -> Any:
    """Replace known ``{token}`` placeholders throughout a JSON-like value.

    Strings inside nested dicts and lists are rewritten. Unknown tokens and
    non-string scalars are returned unchanged.
    """
    return _substitute(value, variable_values(on))


def _substitute(value: Any, table: dict[str, str]) -> Any:
    if isinstance(value, str):
        return _TOKEN_PATTERN.sub(lambda match: table.get(match.group(1), match.group(0)), value)
    if isinstance(value, dict):
        return {key: _substitute(item, table) for key, item in value.items()}
    if isinstance(value, list):
        return [_substitute(item, table) for item in value]
    return value
