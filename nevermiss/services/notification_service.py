import logging
from zoneinfo import ZoneInfo

import httpx
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nevermiss.core.clock import from_naive_utc
from nevermiss.core.config import settings
from nevermiss.models.booking import Booking
from nevermiss.models.notification import (
    Notification,
    NotificationType,
    PushToken,
    PushTokenCreate,
)

logger = logging.getLogger(__name__)

EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"

TITLES = {
    NotificationType.new_booking: "New booking",
    NotificationType.booking_cancelled: "Booking cancelled",
}


def notification_title(kind: NotificationType) -> str:
    return TITLES.get(kind, "Notification")


def notification_body(kind: NotificationType, guest_name: str, start_label: str) -> str:
    if kind == NotificationType.new_booking:
        return f"{guest_name} booked {start_label}"
    if kind == NotificationType.booking_cancelled:
        return f"{guest_name} cancelled the booking on {start_label}"
    return f"{guest_name} - {start_label}"


def format_start(booking: Booking, timezone: str) -> str:
    local = from_naive_utc(booking.start_at).astimezone(ZoneInfo(timezone))
    return local.strftime("%a %b %d %H:%M")


async def record_notification(
    session: AsyncSession, booking: Booking, kind: NotificationType
) -> Notification:
    notification = Notification(user_id=booking.user_id, type=kind.value, booking_id=booking.id)
    session.add(notification)
    await session.flush()
    await session.refresh(notification)
    return notification


async def list_notifications(session: AsyncSession, user_id: int) -> list[Notification]:
    result = await session.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(settings.notifications_page_size)
    )
    return list(result.scalars().all())


async def unread_count(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
    )
    return result.scalar_one()


async def mark_read(session: AsyncSession, notification_id: int, user_id: int) -> bool:
    result = await session.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(is_read=True)
    )
    return bool(result.rowcount)


async def mark_all_read(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True)
    )
    return result.rowcount or 0


async def register_push_token(
    session: AsyncSession, user_id: int, data: PushTokenCreate
) -> PushToken:
    """Upsert by token: a device that changes hands moves to the new user."""
    result = await session.execute(select(PushToken).where(PushToken.token == data.token))
    row = result.scalar_one_or_none()
    if row is None:
        row = PushToken(user_id=user_id, token=data.token, platform=data.platform.value)
    else:
        row.user_id = user_id
        row.platform = data.platform.value
    session.add(row)
    await session.flush()
    await session.refresh(row)
    return row


async def remove_push_token(session: AsyncSession, user_id: int, token: str) -> bool:
    result = await session.execute(
        delete(PushToken).where(PushToken.token == token, PushToken.user_id == user_id)
    )
    return bool(result.rowcount)


async def get_push_tokens(session: AsyncSession, user_id: int) -> list[str]:
    result = await session.execute(select(PushToken.token).where(PushToken.user_id == user_id))
    return [row[0] for row in result.all()]


async def send_expo_push(
    tokens: list[str],
    title: str,
    body: str,
    data: dict,
    badge: int,
) -> None:
    """Deliver a push message through Expo. Runs as a background task; never raises."""
    if not tokens:
        logger.debug("No push tokens, skipping push")
        return
    messages = [
        {"to": token, "title": title, "body": body, "data": data, "sound": "default", "badge": badge}
        for token in tokens
    ]
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if settings.expo_access_token:
        headers["Authorization"] = f"Bearer {settings.expo_access_token}"
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(EXPO_PUSH_URL, json=messages, headers=headers)
    except httpx.HTTPError as e:
        logger.exception("Failed to send push notification: %s", e)
        return
    if resp.status_code != 200:
        logger.warning("Expo push API error: status=%s body=%s", resp.status_code, resp.text[:500])
        return
    try:
        tickets = resp.json().get("data") or []
    except (ValueError, AttributeError):
        logger.warning("Unreadable Expo push response: %s", resp.text[:500])
        return
    for index, ticket in enumerate(tickets):
        if isinstance(ticket, dict) and ticket.get("status") == "error":
            logger.warning("Push ticket %d failed: %s", index, ticket.get("message"))


async def notify_owner(
    session: AsyncSession, booking: Booking, kind: NotificationType, timezone: str
) -> dict:
    """Record the notification and return the kwargs for `send_expo_push`.

    The push itself goes out in a background task after the response.
    """
    await record_notification(session, booking, kind)
    return {
        "tokens": await get_push_tokens(session, booking.user_id),
        "title": notification_title(kind),
        "body": notification_body(kind, booking.guest_name, format_start(booking, timezone)),
        "data": {"type": kind.value, "booking_id": booking.id},
        "badge": await unread_count(session, booking.user_id),
    }
