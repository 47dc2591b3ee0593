from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from nevermiss.core.clock import utc_naive_now


class NotificationType(str, Enum):
    new_booking = "new_booking"
    booking_cancelled = "booking_cancelled"


class Platform(str, Enum):
    ios = "ios"
    macos = "macos"


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    type: str
    booking_id: int = Field(foreign_key="bookings.id", index=True)
    is_read: bool = False
    created_at: datetime = Field(default_factory=utc_naive_now, index=True, sa_type=DateTime)


class NotificationPublic(SQLModel):
    id: int
    type: NotificationType
    booking_id: int
    is_read: bool
    created_at: datetime


class NotificationList(SQLModel):
    notifications: list[NotificationPublic]
    unread_count: int


class PushToken(SQLModel, table=True):
    __tablename__ = "push_tokens"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    token: str = Field(unique=True, index=True)
    platform: str
    created_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime)


class PushTokenCreate(SQLModel):
    token: str = Field(min_length=1)
    platform: Platform
