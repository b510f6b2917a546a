"""Booking lifecycle models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from appointment_engine.schemas.template_schema import LocationType


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW_CLIENT = "no_show_client"
    NO_SHOW_PROVIDER = "no_show_provider"


NO_SHOW_STATUSES = frozenset({BookingStatus.NO_SHOW_CLIENT, BookingStatus.NO_SHOW_PROVIDER})


class ActorRole(str, Enum):
    """Who performed a booking action."""

    CLIENT = "client"
    PROVIDER = "provider"
    SYSTEM = "system"


class Booking(BaseModel):
    """A client's claim on one slot."""

    id: str
    client: str
    provider: str
    slot: str
    location_type: Optional[LocationType] = None
    reason: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    booked_at: datetime
    scheduled_at: datetime
    duration_minutes: int = Field(..., ge=15, le=480)
    confirmation_timestamp: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[ActorRole] = None
    cancelled_at: Optional[datetime] = None
    no_show_marked_by: Optional[ActorRole] = None
    no_show_marked_at: Optional[datetime] = None
    invoice: Optional[str] = None
