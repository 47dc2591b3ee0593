from nevermiss.models.user import User, UserCreate, UserPublic, UserUpdate
from nevermiss.models.refresh_token import RefreshToken
from nevermiss.models.booking_url import (
    BookingURL,
    BookingURLCreate,
    BookingURLPublic,
    BookingURLUpdate,
    MeetingType,
    PublicBookingPage,
)
from nevermiss.models.booking import (
    Booking,
    BookingCreate,
    BookingPublic,
    BookingStatus,
    GuestBookingPublic,
)
from nevermiss.models.notification import (
    Notification,
    NotificationList,
    NotificationPublic,
    NotificationType,
    Platform,
    PushToken,
    PushTokenCreate,
)

__all__ = [
    "User",
    "UserCreate",
    "UserPublic",
    "UserUpdate",
    "RefreshToken",
    "BookingURL",
    "BookingURLCreate",
    "BookingURLPublic",
    "BookingURLUpdate",
    "MeetingType",
    "PublicBookingPage",
    "Booking",
    "BookingCreate",
    "BookingPublic",
    "BookingStatus",
    "GuestBookingPublic",
    "Notification",
    "NotificationList",
    "NotificationPublic",
    "NotificationType",
    "Platform",
    "PushToken",
    "PushTokenCreate",
]
