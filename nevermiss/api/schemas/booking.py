from datetime import date, datetime

from pydantic import BaseModel

from nevermiss.models.booking import GuestBookingPublic


class DateList(BaseModel):
    timezone: str
    dates: list[date]


class Slot(BaseModel):
    start_at: datetime
    end_at: datetime


class SlotList(BaseModel):
    date: date
    timezone: str
    slots: list[Slot]


class BookingConfirmation(BaseModel):
    booking: GuestBookingPublic
    # set when the video meeting could not be created; the booking still stands
    meeting_error: str | None = None


class ConflictCheck(BaseModel):
    conflict: bool
