import logging
import re
from datetime import datetime
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nevermiss.core.clock import from_naive_utc, to_naive_utc, utc_naive_now
from nevermiss.core.config import settings
from nevermiss.core.security import random_string
from nevermiss.models.booking_url import (
    BookingURL,
    BookingURLCreate,
    BookingURLUpdate,
    check_merged_schedule,
)
from nevermiss.scheduling.slots import BookingPageConfig, as_utc

logger = logging.getLogger(__name__)

SLUG_ATTEMPTS = 10
SLUG_PREFIX_LENGTH = 10
SLUG_SUFFIX_LENGTH = 6
SLUG_FALLBACK_LENGTH = 12

# fields a PATCH may explicitly clear
NULLABLE_FIELDS = ("location_address", "expires_at")


class PageState(str, Enum):
    ready = "ready"
    not_found = "not_found"
    inactive = "inactive"
    expired = "expired"


def sanitize_for_slug(title: str) -> str:
    slug = title.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug, flags=re.ASCII)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    return slug[:SLUG_PREFIX_LENGTH]


async def slug_exists(session: AsyncSession, slug: str) -> bool:
    result = await session.execute(select(BookingURL.id).where(BookingURL.slug == slug))
    return result.first() is not None


async def generate_unique_slug(session: AsyncSession, title: str) -> str:
    prefix = sanitize_for_slug(title)
    for _ in range(SLUG_ATTEMPTS):
        suffix = random_string(SLUG_SUFFIX_LENGTH)
        slug = f"{prefix}-{suffix}" if prefix else suffix
        if not await slug_exists(session, slug):
            return slug
    logger.warning("Could not find a free slug for %r after %d attempts", title, SLUG_ATTEMPTS)
    return random_string(SLUG_FALLBACK_LENGTH)


def to_config(page: BookingURL) -> BookingPageConfig:
    return BookingPageConfig(
        duration_minutes=page.duration_minutes,
        allowed_weekdays=frozenset(page.available_days or ()),
        start_time=page.available_start_time,
        end_time=page.available_end_time,
        min_notice_hours=page.min_notice_hours,
        max_days_ahead=page.max_days_ahead,
        timezone=page.timezone,
    )


async def list_booking_urls(session: AsyncSession, user_id: int) -> list[BookingURL]:
    result = await session.execute(
        select(BookingURL)
        .where(BookingURL.user_id == user_id, BookingURL.is_active == True)  # noqa: E712
        .order_by(BookingURL.created_at.desc(), BookingURL.id.desc())
    )
    return list(result.scalars().all())


async def get_booking_url(
    session: AsyncSession, booking_url_id: int, user_id: int
) -> BookingURL | None:
    result = await session.execute(
        select(BookingURL).where(
            BookingURL.id == booking_url_id,
            BookingURL.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_booking_url_by_slug(session: AsyncSession, slug: str) -> BookingURL | None:
    result = await session.execute(select(BookingURL).where(BookingURL.slug == slug))
    return result.scalar_one_or_none()


def page_state(page: BookingURL | None, now: datetime) -> PageState:
    if page is None:
        return PageState.not_found
    if not page.is_active:
        return PageState.inactive
    if page.expires_at and from_naive_utc(page.expires_at) < as_utc(now):
        return PageState.expired
    return PageState.ready


async def create_booking_url(
    session: AsyncSession, user_id: int, data: BookingURLCreate
) -> BookingURL:
    slug = await generate_unique_slug(session, data.title)
    page = BookingURL(
        user_id=user_id,
        slug=slug,
        title=data.title,
        duration_minutes=data.duration_minutes,
        meeting_type=data.meeting_type.value,
        location_address=data.location_address or None,
        available_days=data.available_days,
        available_start_time=data.available_start_time,
        available_end_time=data.available_end_time,
        timezone=data.timezone or settings.default_timezone,
        min_notice_hours=data.min_notice_hours,
        max_days_ahead=data.max_days_ahead,
        expires_at=to_naive_utc(data.expires_at) if data.expires_at else None,
    )
    session.add(page)
    await session.flush()
    await session.refresh(page)
    logger.info("Booking URL created: id=%s slug=%s user_id=%s", page.id, page.slug, user_id)
    return page


async def update_booking_url(
    session: AsyncSession, page: BookingURL, data: BookingURLUpdate
) -> BookingURL:
    """Apply a partial update. Raises ValueError if the resulting schedule is invalid."""
    changes = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_FIELDS
    }
    if "meeting_type" in changes:
        changes["meeting_type"] = changes["meeting_type"].value
    if changes.get("expires_at"):
        changes["expires_at"] = to_naive_utc(changes["expires_at"])
    check_merged_schedule(page, changes)
    for key, value in changes.items():
        setattr(page, key, value)
    page.updated_at = utc_naive_now()
    session.add(page)
    await session.flush()
    await session.refresh(page)
    return page


async def deactivate_booking_url(session: AsyncSession, page: BookingURL) -> None:
    """Soft delete: the page stops accepting bookings but existing bookings keep their reference."""
    page.is_active = False
    page.updated_at = utc_naive_now()
    session.add(page)
    await session.flush()
