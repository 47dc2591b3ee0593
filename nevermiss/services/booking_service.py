"""
Booking persistence and the commit-time double-booking guard.

Slot offers shown to guests are computed from a snapshot that can be stale by
the time they submit, so `create_booking` re-reads the owner's confirmed
bookings inside the write transaction and re-runs the overlap check before
inserting. The owner row is locked for the duration of that check, and a
partial unique index on bookings catches anything that still slips through.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from nevermiss.core.clock import from_naive_utc, to_naive_utc, utc_naive_now
from nevermiss.core.config import settings
from nevermiss.models.booking import Booking, BookingCreate, BookingStatus
from nevermiss.models.booking_url import BookingURL
from nevermiss.models.user import User
from nevermiss.scheduling.overlap import TimeRange, has_conflict, is_valid_interval
from nevermiss.scheduling.slots import as_utc, is_offered_slot, localize
from nevermiss.services.booking_url_service import PageState, page_state, to_config

logger = logging.getLogger(__name__)


class BookingError(str, Enum):
    slot_unavailable = "slot_unavailable"
    outside_availability = "outside_availability"
    invalid_interval = "invalid_interval"
    page_unavailable = "page_unavailable"


@dataclass
class BookingOutcome:
    booking: Booking | None = None
    error: BookingError | None = None

    @property
    def ok(self) -> bool:
        return self.booking is not None


def _confirmed():
    return Booking.status == BookingStatus.confirmed.value


async def confirmed_ranges(
    session: AsyncSession,
    user_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: int | None = None,
) -> list[TimeRange]:
    """Confirmed bookings of an owner that intersect [start, end)."""
    q = select(Booking.start_at, Booking.end_at).where(
        Booking.user_id == user_id,
        _confirmed(),
        Booking.start_at < to_naive_utc(end),
        Booking.end_at > to_naive_utc(start),
    )
    if exclude_booking_id is not None:
        q = q.where(Booking.id != exclude_booking_id)
    result = await session.execute(q)
    return [TimeRange(from_naive_utc(s), from_naive_utc(e)) for s, e in result.all()]


async def confirmed_ranges_for_day(
    session: AsyncSession, page: BookingURL, day: date
) -> list[TimeRange]:
    """Owner-wide confirmed bookings that fall in the page's window on `day`."""
    config = to_config(page)
    window_start = localize(day, config.start_time, config.tz)
    window_end = localize(day, config.end_time, config.tz)
    return await confirmed_ranges(session, page.user_id, window_start, window_end)


async def check_double_booking(
    session: AsyncSession,
    user_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: int | None = None,
) -> bool:
    existing = await confirmed_ranges(session, user_id, start, end, exclude_booking_id)
    return has_conflict(as_utc(start), as_utc(end), existing)


async def list_bookings(
    session: AsyncSession, user_id: int, start: datetime, end: datetime
) -> list[Booking]:
    """Confirmed bookings whose start falls in [start, end], earliest first."""
    result = await session.execute(
        select(Booking)
        .where(
            Booking.user_id == user_id,
            _confirmed(),
            Booking.start_at >= to_naive_utc(start),
            Booking.start_at <= to_naive_utc(end),
        )
        .order_by(Booking.start_at)
    )
    return list(result.scalars().all())


async def get_booking_for_owner(
    session: AsyncSession, booking_id: int, user_id: int
) -> Booking | None:
    result = await session.execute(
        select(Booking).where(Booking.id == booking_id, Booking.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_booking_by_public_id(
    session: AsyncSession, page: BookingURL, public_id: str
) -> Booking | None:
    result = await session.execute(
        select(Booking).where(
            Booking.public_id == public_id,
            Booking.booking_url_id == page.id,
        )
    )
    return result.scalar_one_or_none()


async def _lock_owner(session: AsyncSession, user_id: int) -> None:
    # FOR UPDATE is dropped by the SQLite dialect; SQLite serializes writers anyway
    await session.execute(select(User.id).where(User.id == user_id).with_for_update())


async def create_booking(
    session: AsyncSession, page: BookingURL, data: BookingCreate, now: datetime
) -> BookingOutcome:
    if page_state(page, now) != PageState.ready:
        return BookingOutcome(error=BookingError.page_unavailable)

    start, end = as_utc(data.start_at), as_utc(data.end_at)
    if not is_valid_interval(start, end):
        return BookingOutcome(error=BookingError.invalid_interval)

    config = to_config(page)
    page_id, owner_id = page.id, page.user_id
    if not is_offered_slot(config, start, end, [], now):
        return BookingOutcome(error=BookingError.outside_availability)

    await _lock_owner(session, owner_id)
    existing = await confirmed_ranges(session, owner_id, start, end)
    if has_conflict(start, end, existing):
        logger.info(
            "Booking rejected, slot taken: booking_url_id=%s start=%s", page_id, start.isoformat()
        )
        return BookingOutcome(error=BookingError.slot_unavailable)

    booking = Booking(
        booking_url_id=page_id,
        user_id=owner_id,
        guest_name=data.guest_name.strip(),
        start_at=to_naive_utc(start),
        end_at=to_naive_utc(end),
        meeting_type=page.meeting_type,
        location_address=page.location_address,
        status=BookingStatus.confirmed.value,
        cancel_deadline=to_naive_utc(start - timedelta(days=settings.cancel_deadline_days)),
    )
    session.add(booking)
    try:
        await session.flush()
    except IntegrityError:
        # lost the race to a concurrent insert
        await session.rollback()
        logger.info(
            "Booking rejected by storage constraint: booking_url_id=%s start=%s",
            page_id,
            start.isoformat(),
        )
        return BookingOutcome(error=BookingError.slot_unavailable)
    await session.refresh(booking)
    logger.info("Booking created: id=%s booking_url_id=%s", booking.id, page_id)
    return BookingOutcome(booking=booking)


def can_cancel(booking: Booking, now: datetime) -> bool:
    if booking.status != BookingStatus.confirmed.value:
        return False
    return as_utc(now) < from_naive_utc(booking.cancel_deadline)


async def cancel_booking(session: AsyncSession, booking: Booking, now: datetime) -> bool:
    if not can_cancel(booking, now):
        return False
    booking.status = BookingStatus.cancelled.value
    booking.cancelled_at = to_naive_utc(as_utc(now))
    booking.updated_at = utc_naive_now()
    session.add(booking)
    await session.flush()
    logger.info("Booking cancelled: id=%s", booking.id)
    return True


async def set_meeting_url(session: AsyncSession, booking: Booking, meeting_url: str) -> None:
    booking.meeting_url = meeting_url
    booking.updated_at = utc_naive_now()
    session.add(booking)
    await session.flush()
