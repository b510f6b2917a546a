"""Schedule exception (blackout) models."""

from datetime import date, datetime
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from appointment_engine.utils import ensure_utc


class RecurrenceType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Occurrence(NamedTuple):
    """A concrete [start, end) interval in UTC."""

    start: datetime
    end: datetime


class RecurrencePattern(BaseModel):
    """How an exception repeats.

    ``days_of_week`` uses 0 = Sunday through 6 = Saturday.
    """

    type: RecurrenceType
    interval: int = Field(default=1, ge=1)
    days_of_week: list[int] = Field(default_factory=list)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = Field(default=None, ge=1)

    @field_validator("days_of_week")
    @classmethod
    def days_in_range(cls, value: list[int]) -> list[int]:
        for day in value:
            if not 0 <= day <= 6:
                raise ValueError(f"days_of_week entries must be 0-6, got {day}")
        return sorted(set(value))


class ScheduleException(BaseModel):
    """An owner-declared blackout period, optionally recurring."""

    id: str
    event: str
    owner: str
    timezone: str = "America/New_York"
    start_datetime: datetime
    end_datetime: datetime
    reason: str = Field(..., min_length=1, max_length=500)
    recurring: bool = False
    recurrence_pattern: Optional[RecurrencePattern] = None

    @field_validator("start_datetime", "end_datetime")
    @classmethod
    def normalize_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def end_after_start(self) -> "ScheduleException":
        if self.end_datetime <= self.start_datetime:
            raise ValueError("end_datetime must be after start_datetime")
        return self

    @property
    def seed(self) -> Occurrence:
        return Occurrence(self.start_datetime, self.end_datetime)
