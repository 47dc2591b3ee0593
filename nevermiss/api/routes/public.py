"""Guest-facing booking pages. No authentication; pages are addressed by slug."""

import logging
from datetime import date, datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from nevermiss.api.deps import get_now
from nevermiss.api.schemas.booking import BookingConfirmation, DateList, Slot, SlotList
from nevermiss.core.clock import from_naive_utc
from nevermiss.core.db import get_session
from nevermiss.models.booking import Booking, BookingCreate, GuestBookingPublic
from nevermiss.models.booking_url import BookingURL, MeetingType, PublicBookingPage
from nevermiss.models.notification import NotificationType
from nevermiss.scheduling import compute_eligible_dates, generate_slots
from nevermiss.services.auth_service import get_user
from nevermiss.services.booking_service import (
    BookingError,
    can_cancel,
    cancel_booking,
    confirmed_ranges_for_day,
    create_booking,
    get_booking_by_public_id,
    set_meeting_url,
)
from nevermiss.services.booking_url_service import (
    PageState,
    get_booking_url_by_slug,
    page_state,
    to_config,
)
from nevermiss.services.meeting_service import provision_meeting
from nevermiss.services.notification_service import notify_owner, send_expo_push

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/public", tags=["public"])

SLOT_UNAVAILABLE_MESSAGE = "This time is no longer available, please choose another."

_BOOKING_ERRORS = {
    BookingError.slot_unavailable: (status.HTTP_409_CONFLICT, SLOT_UNAVAILABLE_MESSAGE),
    BookingError.outside_availability: (
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "The requested time is not an offered slot on this page",
    ),
    BookingError.invalid_interval: (
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "end_at must be later than start_at",
    ),
    BookingError.page_unavailable: (
        status.HTTP_410_GONE,
        "This booking page is no longer accepting bookings",
    ),
}


def _to_guest(booking: Booking, now: datetime) -> GuestBookingPublic:
    return GuestBookingPublic(
        public_id=booking.public_id,
        guest_name=booking.guest_name,
        start_at=from_naive_utc(booking.start_at),
        end_at=from_naive_utc(booking.end_at),
        meeting_url=booking.meeting_url,
        meeting_type=booking.meeting_type,
        location_address=booking.location_address,
        status=booking.status,
        cancel_deadline=from_naive_utc(booking.cancel_deadline),
        can_cancel=can_cancel(booking, now),
    )


async def _find_page(session: AsyncSession, slug: str) -> BookingURL:
    page = await get_booking_url_by_slug(session, slug)
    if page is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking page not found")
    return page


async def _open_page(session: AsyncSession, slug: str, now: datetime) -> BookingURL:
    page = await _find_page(session, slug)
    state = page_state(page, now)
    if state == PageState.inactive:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="This booking page has been disabled")
    if state == PageState.expired:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="This booking page has expired")
    return page


@router.get("/{slug}", response_model=PublicBookingPage)
async def get_public_page(
    slug: str,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> PublicBookingPage:
    page = await _open_page(session, slug, now)
    return PublicBookingPage(
        slug=page.slug,
        title=page.title,
        duration_minutes=page.duration_minutes,
        meeting_type=page.meeting_type,
        location_address=page.location_address,
        available_days=list(page.available_days or []),
        available_start_time=page.available_start_time,
        available_end_time=page.available_end_time,
        timezone=page.timezone,
        min_notice_hours=page.min_notice_hours,
        max_days_ahead=page.max_days_ahead,
    )


@router.get("/{slug}/dates", response_model=DateList)
async def get_available_dates(
    slug: str,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> DateList:
    page = await _open_page(session, slug, now)
    return DateList(timezone=page.timezone, dates=compute_eligible_dates(to_config(page), now))


@router.get("/{slug}/slots", response_model=SlotList)
async def get_available_slots(
    slug: str,
    day: date = Query(..., alias="date"),
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> SlotList:
    page = await _open_page(session, slug, now)
    existing = await confirmed_ranges_for_day(session, page, day)
    slots = generate_slots(to_config(page), day, existing, now)
    return SlotList(
        date=day,
        timezone=page.timezone,
        slots=[Slot(start_at=s.start, end_at=s.end) for s in slots],
    )


@router.post(
    "/{slug}/bookings",
    response_model=BookingConfirmation,
    status_code=status.HTTP_201_CREATED,
)
async def book_slot(
    slug: str,
    body: BookingCreate,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> BookingConfirmation:
    page = await _open_page(session, slug, now)
    outcome = await create_booking(session, page, body, now)
    if not outcome.ok:
        code, detail = _BOOKING_ERRORS[outcome.error]
        raise HTTPException(status_code=code, detail=detail)
    booking = outcome.booking
    # the reservation is final before any third-party call is made
    await session.commit()

    meeting_error = None
    if booking.meeting_type != MeetingType.onsite.value:
        owner = await get_user(session, booking.user_id)
        meeting_url = await provision_meeting(page, booking, owner) if owner else None
        if meeting_url:
            await set_meeting_url(session, booking, meeting_url)
        else:
            meeting_error = "The meeting link could not be created; the host will share it separately."

    push = await notify_owner(session, booking, NotificationType.new_booking, page.timezone)
    background_tasks.add_task(send_expo_push, **push)
    return BookingConfirmation(booking=_to_guest(booking, now), meeting_error=meeting_error)


@router.get("/{slug}/bookings/{public_id}", response_model=GuestBookingPublic)
async def get_guest_booking(
    slug: str,
    public_id: str,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> GuestBookingPublic:
    page = await _find_page(session, slug)
    booking = await get_booking_by_public_id(session, page, public_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return _to_guest(booking, now)


@router.post("/{slug}/bookings/{public_id}/cancel", response_model=GuestBookingPublic)
async def cancel_guest_booking(
    slug: str,
    public_id: str,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> GuestBookingPublic:
    page = await _find_page(session, slug)
    booking = await get_booking_by_public_id(session, page, public_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    if not await cancel_booking(session, booking, now):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This booking can no longer be cancelled",
        )
    push = await notify_owner(session, booking, NotificationType.booking_cancelled, page.timezone)
    background_tasks.add_task(send_expo_push, **push)
    return _to_guest(booking, now)
