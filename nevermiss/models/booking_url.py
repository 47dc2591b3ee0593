from datetime import datetime, time
from enum import Enum

from pydantic import field_validator, model_validator
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from nevermiss.core.clock import utc_naive_now
from nevermiss.core.config import settings
from nevermiss.scheduling.slots import BookingPageConfig, validate_config


class MeetingType(str, Enum):
    zoom = "zoom"
    google_meet = "google_meet"
    onsite = "onsite"


class BookingURL(SQLModel, table=True):
    __tablename__ = "booking_urls"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    slug: str = Field(unique=True, index=True)
    title: str
    duration_minutes: int
    meeting_type: str = MeetingType.onsite.value
    location_address: str | None = None
    # Sunday = 0 ... Saturday = 6
    available_days: list[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    available_start_time: time
    available_end_time: time
    timezone: str = Field(default_factory=lambda: settings.default_timezone)
    min_notice_hours: int = 24
    max_days_ahead: int = 30
    expires_at: datetime | None = Field(default=None, sa_type=DateTime)
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime)


def _check_schedule(
    duration_minutes: int,
    available_days: list[int],
    start: time,
    end: time,
    min_notice_hours: int,
    max_days_ahead: int,
    timezone: str,
) -> None:
    errors = validate_config(
        BookingPageConfig(
            duration_minutes=duration_minutes,
            allowed_weekdays=frozenset(available_days),
            start_time=start,
            end_time=end,
            min_notice_hours=min_notice_hours,
            max_days_ahead=max_days_ahead,
            timezone=timezone,
        )
    )
    if errors:
        raise ValueError("; ".join(errors))


class BookingURLCreate(SQLModel):
    title: str = Field(min_length=1, max_length=200)
    duration_minutes: int
    meeting_type: MeetingType = MeetingType.onsite
    location_address: str | None = None
    available_days: list[int]
    available_start_time: time
    available_end_time: time
    timezone: str | None = None
    min_notice_hours: int = Field(default_factory=lambda: settings.default_min_notice_hours)
    max_days_ahead: int = Field(default_factory=lambda: settings.default_max_days_ahead)
    expires_at: datetime | None = None

    @field_validator("available_days")
    @classmethod
    def _dedupe_days(cls, v: list[int]) -> list[int]:
        return sorted(set(v))

    @model_validator(mode="after")
    def _check(self) -> "BookingURLCreate":
        if self.meeting_type == MeetingType.onsite and not self.location_address:
            raise ValueError("location_address is required for onsite meetings")
        _check_schedule(
            self.duration_minutes,
            self.available_days,
            self.available_start_time,
            self.available_end_time,
            self.min_notice_hours,
            self.max_days_ahead,
            self.timezone or settings.default_timezone,
        )
        return self


class BookingURLUpdate(SQLModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    duration_minutes: int | None = None
    meeting_type: MeetingType | None = None
    location_address: str | None = None
    available_days: list[int] | None = None
    available_start_time: time | None = None
    available_end_time: time | None = None
    timezone: str | None = None
    min_notice_hours: int | None = None
    max_days_ahead: int | None = None
    expires_at: datetime | None = None

    @field_validator("available_days")
    @classmethod
    def _dedupe_days(cls, v: list[int] | None) -> list[int] | None:
        return sorted(set(v)) if v is not None else None


def check_merged_schedule(page: BookingURL, changes: dict) -> None:
    """Validate the schedule a partial update would leave behind. Raises ValueError."""
    merged = {**page.model_dump(), **changes}
    if merged["meeting_type"] == MeetingType.onsite.value and not merged["location_address"]:
        raise ValueError("location_address is required for onsite meetings")
    _check_schedule(
        merged["duration_minutes"],
        merged["available_days"],
        merged["available_start_time"],
        merged["available_end_time"],
        merged["min_notice_hours"],
        merged["max_days_ahead"],
        merged["timezone"],
    )


class BookingURLPublic(SQLModel):
    id: int
    user_id: int
    slug: str
    title: str
    duration_minutes: int
    meeting_type: MeetingType
    location_address: str | None = None
    available_days: list[int]
    available_start_time: time
    available_end_time: time
    timezone: str
    min_notice_hours: int
    max_days_ahead: int
    expires_at: datetime | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class PublicBookingPage(SQLModel):
    """What a guest sees on a booking page; owner-only fields are left out."""

    slug: str
    title: str
    duration_minutes: int
    meeting_type: MeetingType
    location_address: str | None = None
    available_days: list[int]
    available_start_time: time
    available_end_time: time
    timezone: str
    min_notice_hours: int
    max_days_ahead: int
