from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from nevermiss.api.deps import get_current_user
from nevermiss.core.clock import from_naive_utc
from nevermiss.core.db import get_session
from nevermiss.models.notification import (
    Notification,
    NotificationList,
    NotificationPublic,
    PushTokenCreate,
)
from nevermiss.models.user import User
from nevermiss.services.notification_service import (
    list_notifications,
    mark_all_read,
    mark_read,
    register_push_token,
    remove_push_token,
    unread_count,
)

router = APIRouter(tags=["notifications"])


def _to_public(n: Notification) -> NotificationPublic:
    return NotificationPublic(
        id=n.id,
        type=n.type,
        booking_id=n.booking_id,
        is_read=n.is_read,
        created_at=from_naive_utc(n.created_at),
    )


@router.get("/notifications", response_model=NotificationList)
async def get_my_notifications(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> NotificationList:
    rows = await list_notifications(session, current_user.id)
    return NotificationList(
        notifications=[_to_public(n) for n in rows],
        unread_count=await unread_count(session, current_user.id),
    )


@router.post("/notifications/read-all")
async def read_all_notifications(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> dict:
    updated = await mark_all_read(session, current_user.id)
    return {"updated": updated}


@router.post("/notifications/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def read_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> None:
    if not await mark_read(session, notification_id, current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")


@router.post("/push-tokens", status_code=status.HTTP_201_CREATED)
async def add_push_token(
    body: PushTokenCreate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> dict:
    row = await register_push_token(session, current_user.id, body)
    return {"token": row.token, "platform": row.platform}


@router.delete("/push-tokens/{token}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_push_token(
    token: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> None:
    if not await remove_push_token(session, current_user.id, token):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Push token not found")
