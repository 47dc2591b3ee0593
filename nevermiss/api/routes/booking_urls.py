import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from nevermiss.api.deps import get_current_user
from nevermiss.core.clock import from_naive_utc
from nevermiss.core.db import get_session
from nevermiss.models.booking_url import (
    BookingURL,
    BookingURLCreate,
    BookingURLPublic,
    BookingURLUpdate,
)
from nevermiss.models.user import User
from nevermiss.services.booking_url_service import (
    create_booking_url,
    deactivate_booking_url,
    get_booking_url,
    list_booking_urls,
    update_booking_url,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/booking-urls", tags=["booking-urls"])


def _to_public(page: BookingURL) -> BookingURLPublic:
    return BookingURLPublic(
        id=page.id,
        user_id=page.user_id,
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
        expires_at=from_naive_utc(page.expires_at) if page.expires_at else None,
        is_active=page.is_active,
        created_at=from_naive_utc(page.created_at),
        updated_at=from_naive_utc(page.updated_at),
    )


async def _get_owned(session: AsyncSession, booking_url_id: int, user: User) -> BookingURL:
    page = await get_booking_url(session, booking_url_id, user.id)
    if not page or not page.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking URL not found")
    return page


@router.get("", response_model=list[BookingURLPublic])
async def list_my_booking_urls(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[BookingURLPublic]:
    pages = await list_booking_urls(session, current_user.id)
    return [_to_public(p) for p in pages]


@router.post("", response_model=BookingURLPublic, status_code=status.HTTP_201_CREATED)
async def create_my_booking_url(
    body: BookingURLCreate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> BookingURLPublic:
    page = await create_booking_url(session, current_user.id, body)
    return _to_public(page)


@router.get("/{booking_url_id}", response_model=BookingURLPublic)
async def get_my_booking_url(
    booking_url_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> BookingURLPublic:
    return _to_public(await _get_owned(session, booking_url_id, current_user))


@router.patch("/{booking_url_id}", response_model=BookingURLPublic)
async def update_my_booking_url(
    booking_url_id: int,
    body: BookingURLUpdate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> BookingURLPublic:
    page = await _get_owned(session, booking_url_id, current_user)
    try:
        page = await update_booking_url(session, page, body)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return _to_public(page)


@router.delete("/{booking_url_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_my_booking_url(
    booking_url_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> None:
    page = await _get_owned(session, booking_url_id, current_user)
    await deactivate_booking_url(session, page)
    logger.info("Booking URL deactivated: id=%s user_id=%s", booking_url_id, current_user.id)
