"""Weekly availability template models."""

from datetime import date
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from appointment_engine.config import settings


class DayOfWeek(str, Enum):
    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"
    SUN = "sun"


# Indexed by date.weekday() (0 = Monday)
DAY_KEYS: tuple[DayOfWeek, ...] = (
    DayOfWeek.MON,
    DayOfWeek.TUE,
    DayOfWeek.WED,
    DayOfWeek.THU,
    DayOfWeek.FRI,
    DayOfWeek.SAT,
    DayOfWeek.SUN,
)


class LocationType(str, Enum):
    VIDEO = "video"
    PHONE = "phone"
    IN_PERSON = "in-person"


class TemplateStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class BillingConfig(BaseModel):
    """Price charged when a slot from this template is booked."""

    price: int = Field(..., ge=0, description="Amount in minor units (cents)")
    currency: str = Field(..., min_length=3, max_length=3)


class TimeBlock(BaseModel):
    """A local start/end range within one day.

    Bounds on times, duration and buffer are reported by
    ``TimeBlockValidator`` rather than enforced here, so a whole template
    can be checked and every problem listed at once.
    """

    start_time: str
    end_time: str
    slot_duration: Optional[int] = None
    buffer_minutes: Optional[int] = None

    def resolved(self, default_duration: int, default_buffer: int) -> "TimeBlock":
        """Return a copy with missing duration/buffer filled from defaults."""
        return self.model_copy(
            update={
                "slot_duration": (
                    self.slot_duration if self.slot_duration is not None else default_duration
                ),
                "buffer_minutes": (
                    self.buffer_minutes if self.buffer_minutes is not None else default_buffer
                ),
            }
        )


class DailyConfig(BaseModel):
    """Whether the provider works on a weekday, and when."""

    enabled: bool = False
    time_blocks: list[TimeBlock] = Field(default_factory=list)


def _all_location_types() -> list[LocationType]:
    return list(LocationType)


class WeeklyTemplate(BaseModel):
    """A provider's recurring weekly availability definition."""

    id: str
    owner: str
    title: str = ""
    context: Optional[str] = None
    timezone: str = "America/New_York"
    location_types: list[LocationType] = Field(default_factory=_all_location_types, min_length=1)
    min_booking_minutes: int = Field(default=1440, ge=0, le=4320)
    max_booking_days: int = Field(default=30, ge=0, le=365)
    slot_duration: int = Field(
        default_factory=lambda: settings.generation.default_slot_duration, ge=15, le=480
    )
    buffer_minutes: int = Field(
        default_factory=lambda: settings.generation.default_buffer_minutes, ge=0, le=120
    )
    billing_config: Optional[BillingConfig] = None
    status: TemplateStatus = TemplateStatus.ACTIVE
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    daily_configs: dict[DayOfWeek, DailyConfig] = Field(default_factory=dict)

    @field_validator("timezone")
    @classmethod
    def timezone_must_exist(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown IANA timezone: {value!r}") from None
        return value

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def config_for(self, day: date) -> Optional[DailyConfig]:
        """Daily configuration for the weekday of ``day``, if any."""
        return self.daily_configs.get(DAY_KEYS[day.weekday()])

    def resolved_blocks(self, day: date) -> list[TimeBlock]:
        """Enabled blocks for ``day`` with template defaults applied."""
        config = self.config_for(day)
        if config is None or not config.enabled:
            return []
        return [
            block.resolved(self.slot_duration, self.buffer_minutes)
            for block in config.time_blocks
        ]

    def is_effective_on(self, day: date) -> bool:
        if self.effective_from is not None and day < self.effective_from:
            return False
        if self.effective_to is not None and day > self.effective_to:
            return False
        return True
