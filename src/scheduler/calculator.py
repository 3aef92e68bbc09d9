"""Next fire time calculation for template recurrence rules.

All functions are pure in ``(rule, now_ms)``. Times of day are interpreted in
the rule's timezone; nonexistent or repeated local times around DST
transitions resolve with ``fold=0``.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Callable
from zoneinfo import ZoneInfo

from models import WEEKDAYS, RecurrenceKind, ScheduleRule
from scheduler.errors import ScheduleConfigurationError
from time_utils import from_epoch_ms, resolve_timezone, to_epoch_ms

# Enough months to reach the next occurrence of any day 1..31.
_MAX_MONTHS_SEARCHED = 24
_WEEKLY_DAYS_SEARCHED = 8


def calculate_next(rule: ScheduleRule, now_ms: int) -> int | None:
    """Return the next fire time strictly after ``now_ms``, or None.

    None is returned for disabled or paused rules and when no occurrence
    exists before ``end_date``.

    Raises:
        ScheduleConfigurationError: The rule lacks the configuration its
            recurrence kind requires.
    """
    if not rule.is_active:
        return None
    strategy = _STRATEGIES.get(rule.recurrence_kind)
    if strategy is None:
        raise ScheduleConfigurationError(
            f"Unsupported recurrence kind: {rule.recurrence_kind}.",
            {"field": "recurrence_kind"},
        )
    candidate = strategy(rule, now_ms)
    if candidate is None:
        return None
    if rule.end_date is not None and candidate >= rule.end_date:
        return None
    return candidate


def _next_daily(rule: ScheduleRule, now_ms: int) -> int | None:
    tz = _zone(rule)
    today = from_epoch_ms(now_ms, tz).date()
    for offset in (0, 1):
        candidate = _local_time_ms(rule, today + timedelta(days=offset), tz)
        if candidate > now_ms:
            return candidate
    return None


def _next_weekly(rule: ScheduleRule, now_ms: int) -> int | None:
    days = rule.recurrence_config.days_of_week
    if not days:
        raise ScheduleConfigurationError(
            "Weekly rules require days_of_week.",
            {"field": "recurrence_config.days_of_week"},
        )
    tz = _zone(rule)
    today = from_epoch_ms(now_ms, tz).date()
    for offset in range(_WEEKLY_DAYS_SEARCHED):
        day = today + timedelta(days=offset)
        if _weekday_name(day) not in days:
            continue
        candidate = _local_time_ms(rule, day, tz)
        if candidate > now_ms:
            return candidate
    return None


def _next_monthly(rule: ScheduleRule, now_ms: int) -> int | None:
    day_of_month = rule.recurrence_config.day_of_month
    if day_of_month is None:
        raise ScheduleConfigurationError(
            "Monthly rules require day_of_month.",
            {"field": "recurrence_config.day_of_month"},
        )
    if day_of_month != "last" and not 1 <= day_of_month <= 31:
        raise ScheduleConfigurationError(
            "day_of_month must be between 1 and 31 or 'last'.",
            {"field": "recurrence_config.day_of_month"},
        )
    tz = _zone(rule)
    today = from_epoch_ms(now_ms, tz).date()
    year, month = today.year, today.month
    for _ in range(_MAX_MONTHS_SEARCHED):
        last_day = calendar.monthrange(year, month)[1]
        day = last_day if day_of_month == "last" else day_of_month
        if day <= last_day:
            candidate = _local_time_ms(rule, date(year, month, day), tz)
            if candidate > now_ms:
                return candidate
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return None


def _next_custom(rule: ScheduleRule, now_ms: int) -> int | None:
    config = rule.recurrence_config
    interval = config.interval_ms
    start = config.start_time
    if interval is None or start is None:
        raise ScheduleConfigurationError(
            "Custom rules require interval_ms and start_time.",
            {"field": "recurrence_config"},
        )
    if interval <= 0:
        raise ScheduleConfigurationError(
            "interval_ms must be > 0.",
            {"field": "recurrence_config.interval_ms"},
        )
    if now_ms < start:
        return start
    periods = -(-(now_ms - start + 1) // interval)
    return start + periods * interval


_STRATEGIES: dict[RecurrenceKind, Callable[[ScheduleRule, int], int | None]] = {
    RecurrenceKind.DAILY: _next_daily,
    RecurrenceKind.WEEKLY: _next_weekly,
    RecurrenceKind.MONTHLY: _next_monthly,
    RecurrenceKind.CUSTOM: _next_custom,
}


def _zone(rule: ScheduleRule) -> ZoneInfo:
    try:
        return resolve_timezone(rule.timezone)
    except ValueError as exc:
        raise ScheduleConfigurationError(
            str(exc), {"field": "timezone", "timezone": rule.timezone}
        ) from exc


def _local_time_ms(rule: ScheduleRule, day: date, tz: ZoneInfo) -> int:
    execution_time = rule.execution_time
    local = datetime(
        day.year,
        day.month,
        day.day,
        execution_time.hour,
        execution_time.minute,
        tzinfo=tz,
    )
    return to_epoch_ms(local)


def _weekday_name(day: date) -> str:
    # date.weekday() counts from Monday; WEEKDAYS starts on Sunday.
    return WEEKDAYS[(day.weekday() + 1) % 7]
