"""Generated and stored time slot models."""

from datetime import date, datetime
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, Field

from appointment_engine.schemas.template_schema import BillingConfig, LocationType


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    BLOCKED = "blocked"


class SlotKey(NamedTuple):
    """Identity of a generated slot, used to make re-generation idempotent."""

    owner: str
    date: str
    block_start: str
    local_start: str


class CandidateSlot(BaseModel):
    """A slot produced by the generator, not yet persisted."""

    owner: str
    event: str
    context: Optional[str] = None
    date: date
    block_start: str
    local_start: str
    start_time: datetime
    end_time: datetime
    location_types: list[LocationType] = Field(default_factory=list)
    status: SlotStatus = SlotStatus.AVAILABLE
    billing_override: Optional[BillingConfig] = None

    @property
    def key(self) -> SlotKey:
        return SlotKey(self.owner, self.date.isoformat(), self.block_start, self.local_start)

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


class TimeSlot(CandidateSlot):
    """A persisted slot."""

    id: str
    booking: Optional[str] = None
