"""Reusable validation helpers for template schedule rules."""

from __future__ import annotations

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config import settings
from models import WEEKDAYS, RecurrenceKind, ScheduleRule
from scheduler.errors import ScheduleValidationError


def _require_non_empty(value: str | None, field: str) -> str:
    """Ensure a string field is present and non-empty."""
    if value is None or not value.strip():
        raise ScheduleValidationError(f"{field} is required.", {"field": field})
    return value


def validate_timezone(timezone_name: str) -> None:
    """Validate that the timezone name resolves to a ZoneInfo entry."""
    _require_non_empty(timezone_name, "timezone")
    try:
        ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ScheduleValidationError(
            f"Invalid timezone: {timezone_name}.",
            {"field": "timezone", "timezone": timezone_name},
        ) from exc


def validate_days_of_week(days: list[str] | None) -> None:
    """Validate weekly day names."""
    if not days:
        raise ScheduleValidationError(
            "days_of_week is required for weekly schedules.",
            {"field": "recurrence_config.days_of_week"},
        )
    unknown = [day for day in days if day not in WEEKDAYS]
    if unknown:
        raise ScheduleValidationError(
            f"Invalid days_of_week: {', '.join(unknown)}.",
            {"field": "recurrence_config.days_of_week", "days": unknown},
        )


def validate_custom_interval(
    interval_ms: int | None,
    *,
    min_interval_ms: int,
    max_interval_ms: int,
) -> None:
    """Validate a custom interval against the configured bounds."""
    if interval_ms is None:
        raise ScheduleValidationError(
            "interval_ms is required for custom schedules.",
            {"field": "recurrence_config.interval_ms"},
        )
    if interval_ms < min_interval_ms or interval_ms > max_interval_ms:
        raise ScheduleValidationError(
            f"interval_ms must be between {min_interval_ms} and {max_interval_ms}.",
            {
                "field": "recurrence_config.interval_ms",
                "interval_ms": interval_ms,
                "min_interval_ms": min_interval_ms,
                "max_interval_ms": max_interval_ms,
            },
        )


def validate_rule(
    rule: ScheduleRule,
    *,
    min_custom_interval_ms: int | None = None,
    max_custom_interval_ms: int | None = None,
) -> None:
    """Validate a schedule rule before it is stored or armed.

    Interval bounds default to ``settings.scheduler``.
    """
    scheduler_config = settings.scheduler
    min_interval = (
        min_custom_interval_ms
        if min_custom_interval_ms is not None
        else scheduler_config.min_custom_interval_ms
    )
    max_interval = (
        max_custom_interval_ms
        if max_custom_interval_ms is not None
        else scheduler_config.max_custom_interval_ms
    )

    validate_timezone(rule.timezone)
    config = rule.recurrence_config

    if rule.recurrence_kind == RecurrenceKind.WEEKLY:
        validate_days_of_week(config.days_of_week)
    elif rule.recurrence_kind == RecurrenceKind.MONTHLY:
        day = config.day_of_month
        if day is None:
            raise ScheduleValidationError(
                "day_of_month is required for monthly schedules.",
                {"field": "recurrence_config.day_of_month"},
            )
        if day != "last" and not 1 <= day <= 31:
            raise ScheduleValidationError(
                "day_of_month must be between 1 and 31 or 'last'.",
                {"field": "recurrence_config.day_of_month", "day_of_month": day},
            )
    elif rule.recurrence_kind == RecurrenceKind.CUSTOM:
        validate_custom_interval(
            config.interval_ms,
            min_interval_ms=min_interval,
            max_interval_ms=max_interval,
        )
        if config.start_time is None:
            raise ScheduleValidationError(
                "start_time is required for custom schedules.",
                {"field": "recurrence_config.start_time"},
            )

    if rule.end_date is not None and rule.end_date <= 0:
        raise ScheduleValidationError(
            "end_date must be a positive epoch timestamp.",
            {"field": "end_date", "end_date": rule.end_date},
        )
