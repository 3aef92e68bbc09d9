"""Data models for Expense Autopilot."""

import enum
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base

# SQLAlchemy base
Base = declarative_base()

WEEKDAYS = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)


class RecurrenceKind(str, enum.Enum):
    """Supported recurrence rule kinds."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class ExecutionStatus(str, enum.Enum):
    """Outcome of a single template firing."""

    SUCCESS = "success"
    FAILURE = "failure"


class ExecutionTime(BaseModel):
    """Wall-clock time of day in the rule's timezone."""

    hour: int = Field(ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)


class RecurrenceConfig(BaseModel):
    """Kind-specific recurrence payload.

    Only the fields relevant to the rule's kind are read: ``days_of_week`` for
    weekly, ``day_of_month`` for monthly, ``interval_ms`` and ``start_time``
    for custom.
    """

    days_of_week: list[str] | None = None
    day_of_month: int | Literal["last"] | None = None
    interval_ms: int | None = None
    start_time: int | None = None

    @field_validator("days_of_week")
    @classmethod
    def normalize_days(cls, value: list[str] | None) -> list[str] | None:
        """Lowercase and de-duplicate weekday names, keeping calendar order."""
        if value is None:
            return None
        names = {day.strip().lower() for day in value if day.strip()}
        ordered = [day for day in WEEKDAYS if day in names]
        unknown = sorted(names.difference(WEEKDAYS))
        return ordered + unknown


class ScheduleRule(BaseModel):
    """Recurrence rule attached to a template."""

    enabled: bool = True
    paused: bool = False
    recurrence_kind: RecurrenceKind
    execution_time: ExecutionTime = Field(default_factory=lambda: ExecutionTime(hour=9))
    recurrence_config: RecurrenceConfig = Field(default_factory=RecurrenceConfig)
    timezone: str = "UTC"
    end_date: int | None = None
    next_execution: int | None = None

    @property
    def is_active(self) -> bool:
        """Return whether the rule should currently be armed."""
        return self.enabled and not self.paused


class ExecutionRecord(BaseModel):
    """Immutable audit entry for one firing."""

    model_config = ConfigDict(frozen=True)

    id: str
    executed_at: int
    status: ExecutionStatus
    remote_expense_id: str | None = None
    error: str | None = None
    duration_ms: int = 0
    retry_count: int = 0


class ExpenseTemplate(BaseModel):
    """User-defined reusable expense payload with an optional recurrence rule."""

    id: str
    name: str = ""
    expense_snapshot: dict[str, Any] = Field(default_factory=dict)
    scheduling: ScheduleRule | None = None
    execution_history: list[ExecutionRecord] = Field(default_factory=list)
    use_count: int = 0
    scheduled_use_count: int = 0
    created_from: Literal["manual", "expense"] = "manual"
    source_expense_id: str | None = None
    created_at: int = 0
    updated_at: int = 0
    last_used: int | None = None

    @property
    def is_schedulable(self) -> bool:
        """Return whether the template has an enabled, unpaused rule."""
        return self.scheduling is not None and self.scheduling.is_active


class WakeUp(BaseModel):
    """Persisted wake-up metadata that survives process restarts."""

    model_config = ConfigDict(frozen=True)

    template_id: str
    scheduled_for: int
    created_at: int


class KeyValueEntry(Base):
    """Durable key-value record backing the SQL store."""

    __tablename__ = "kv_entries"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
