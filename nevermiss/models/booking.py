from datetime import datetime
from enum import Enum

from pydantic import model_validator
from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel

from nevermiss.core.clock import utc_naive_now
from nevermiss.core.security import new_public_id
from nevermiss.models.booking_url import MeetingType
from nevermiss.scheduling.slots import as_utc


class BookingStatus(str, Enum):
    confirmed = "confirmed"
    cancelled = "cancelled"


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    # Storage-level backstop against double booking: one confirmed booking per
    # owner per start instant. PostgreSQL additionally gets a range exclusion
    # constraint in the migration.
    __table_args__ = (
        Index(
            "uq_bookings_owner_start_confirmed",
            "user_id",
            "start_at",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    public_id: str = Field(default_factory=new_public_id, unique=True, index=True)
    booking_url_id: int = Field(foreign_key="booking_urls.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    guest_name: str
    start_at: datetime = Field(index=True, sa_type=DateTime)
    end_at: datetime = Field(sa_type=DateTime)
    meeting_url: str | None = None
    meeting_type: str
    location_address: str | None = None
    status: str = Field(default=BookingStatus.confirmed.value, index=True)
    cancelled_at: datetime | None = Field(default=None, sa_type=DateTime)
    cancel_deadline: datetime = Field(sa_type=DateTime)
    created_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime)


class BookingCreate(SQLModel):
    guest_name: str = Field(min_length=1, max_length=100)
    start_at: datetime
    end_at: datetime

    @model_validator(mode="after")
    def _check_interval(self) -> "BookingCreate":
        # naive values are UTC, as everywhere else
        if as_utc(self.end_at) <= as_utc(self.start_at):
            raise ValueError("end_at must be later than start_at")
        return self


class BookingPublic(SQLModel):
    id: int
    public_id: str
    booking_url_id: int
    guest_name: str
    start_at: datetime
    end_at: datetime
    meeting_url: str | None = None
    meeting_type: MeetingType
    location_address: str | None = None
    status: BookingStatus
    cancelled_at: datetime | None = None
    cancel_deadline: datetime
    created_at: datetime


class GuestBookingPublic(SQLModel):
    """Booking as shown to the guest on the confirmation and cancel pages."""

    public_id: str
    guest_name: str
    start_at: datetime
    end_at: datetime
    meeting_url: str | None = None
    meeting_type: MeetingType
    location_address: str | None = None
    status: BookingStatus
    cancel_deadline: datetime
    can_cancel: bool = False
