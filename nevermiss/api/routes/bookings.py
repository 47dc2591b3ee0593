import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from nevermiss.api.deps import get_current_user, get_now
from nevermiss.api.schemas.booking import ConflictCheck
from nevermiss.core.clock import from_naive_utc
from nevermiss.core.db import get_session
from nevermiss.models.booking import Booking, BookingPublic
from nevermiss.models.user import User
from nevermiss.scheduling import is_valid_interval
from nevermiss.scheduling.slots import as_utc
from nevermiss.services.booking_service import (
    cancel_booking,
    check_double_booking,
    get_booking_for_owner,
    list_bookings,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


def _to_public(b: Booking) -> BookingPublic:
    return BookingPublic(
        id=b.id,
        public_id=b.public_id,
        booking_url_id=b.booking_url_id,
        guest_name=b.guest_name,
        start_at=from_naive_utc(b.start_at),
        end_at=from_naive_utc(b.end_at),
        meeting_url=b.meeting_url,
        meeting_type=b.meeting_type,
        location_address=b.location_address,
        status=b.status,
        cancelled_at=from_naive_utc(b.cancelled_at) if b.cancelled_at else None,
        cancel_deadline=from_naive_utc(b.cancel_deadline),
        created_at=from_naive_utc(b.created_at),
    )


def _check_range(start: datetime, end: datetime) -> None:
    if not is_valid_interval(as_utc(start), as_utc(end)):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end must be later than start",
        )


@router.get("", response_model=list[BookingPublic])
async def list_my_bookings(
    start: datetime = Query(...),
    end: datetime = Query(...),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[BookingPublic]:
    """Confirmed bookings starting within [start, end], across all of the owner's pages."""
    _check_range(start, end)
    bookings = await list_bookings(session, current_user.id, start, end)
    return [_to_public(b) for b in bookings]


@router.get("/conflicts", response_model=ConflictCheck)
async def check_conflict(
    start: datetime = Query(...),
    end: datetime = Query(...),
    exclude_id: int | None = Query(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ConflictCheck:
    _check_range(start, end)
    conflict = await check_double_booking(session, current_user.id, start, end, exclude_id)
    return ConflictCheck(conflict=conflict)


@router.get("/{booking_id}", response_model=BookingPublic)
async def get_my_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> BookingPublic:
    booking = await get_booking_for_owner(session, booking_id, current_user.id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return _to_public(booking)


@router.post("/{booking_id}/cancel", response_model=BookingPublic)
async def cancel_my_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> BookingPublic:
    booking = await get_booking_for_owner(session, booking_id, current_user.id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    if not await cancel_booking(session, booking, now):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This booking can no longer be cancelled",
        )
    return _to_public(booking)
