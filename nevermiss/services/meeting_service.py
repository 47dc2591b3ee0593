"""
Video meeting links for bookings.

Zoom uses the account-level Server-to-Server OAuth app from settings; Google
Meet links come from a Calendar event created with the owner's Google refresh
token. Onsite bookings get no link.
"""

import base64
import logging
import uuid
from collections.abc import Awaitable, Callable

import httpx

from nevermiss.core.clock import from_naive_utc
from nevermiss.core.config import settings
from nevermiss.models.booking import Booking
from nevermiss.models.booking_url import BookingURL, MeetingType
from nevermiss.models.user import User
from nevermiss.services.google_auth_service import GOOGLE_TOKEN_URL

logger = logging.getLogger(__name__)

ZOOM_TOKEN_URL = "https://zoom.us/oauth/token"
ZOOM_MEETINGS_URL = "https://api.zoom.us/v2/users/me/meetings"
GOOGLE_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
HTTP_TIMEOUT = 15.0


class MeetingProvisioningError(Exception):
    """The provider could not create a meeting for this booking."""


def meeting_topic(page: BookingURL, booking: Booking) -> str:
    return f"{page.title} - {booking.guest_name}"


def _json(resp: httpx.Response, source: str) -> dict:
    try:
        body = resp.json()
    except ValueError as e:
        logger.warning("%s returned a non-JSON body: %s", source, resp.text[:500])
        raise MeetingProvisioningError(f"{source} returned an unreadable response") from e
    if not isinstance(body, dict):
        raise MeetingProvisioningError(f"{source} returned an unexpected response")
    return body


def _access_token(resp: httpx.Response, source: str) -> str:
    token = _json(resp, source).get("access_token")
    if not token:
        raise MeetingProvisioningError(f"{source} response had no access_token")
    return token


async def get_zoom_access_token(client: httpx.AsyncClient) -> str:
    if not settings.zoom_enabled:
        raise MeetingProvisioningError("Zoom credentials not configured")
    credentials = base64.b64encode(
        f"{settings.zoom_client_id}:{settings.zoom_client_secret}".encode()
    ).decode()
    resp = await client.post(
        ZOOM_TOKEN_URL,
        data={"grant_type": "account_credentials", "account_id": settings.zoom_account_id},
        headers={"Authorization": f"Basic {credentials}"},
    )
    if resp.status_code != 200:
        logger.warning("Zoom OAuth failed: status=%s body=%s", resp.status_code, resp.text[:500])
        raise MeetingProvisioningError(f"Failed to get Zoom access token: {resp.status_code}")
    return _access_token(resp, "Zoom OAuth")


async def create_zoom_meeting(
    client: httpx.AsyncClient, page: BookingURL, booking: Booking, owner: User
) -> str:
    access_token = await get_zoom_access_token(client)
    start = from_naive_utc(booking.start_at)
    resp = await client.post(
        ZOOM_MEETINGS_URL,
        json={
            "topic": meeting_topic(page, booking),
            "type": 2,  # scheduled meeting
            "start_time": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration": page.duration_minutes,
            "timezone": page.timezone,
            "settings": {
                "host_video": True,
                "participant_video": True,
                "join_before_host": True,
                "mute_upon_entry": False,
                "waiting_room": False,
                "auto_recording": "none",
            },
        },
        headers={"Authorization": f"Bearer {access_token}"},
    )
    if resp.status_code not in (200, 201):
        logger.warning("Zoom API error: status=%s body=%s", resp.status_code, resp.text[:500])
        raise MeetingProvisioningError(f"Failed to create Zoom meeting: {resp.status_code}")
    join_url = _json(resp, "Zoom API").get("join_url")
    if not join_url:
        raise MeetingProvisioningError("Zoom response had no join_url")
    return join_url


async def refresh_google_access_token(client: httpx.AsyncClient, refresh_token: str) -> str:
    if not settings.google_oauth_enabled:
        raise MeetingProvisioningError("Google OAuth credentials not configured")
    resp = await client.post(
        GOOGLE_TOKEN_URL,
        data={
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret,
        },
    )
    if resp.status_code != 200:
        try:
            error = _json(resp, "Google token endpoint").get("error")
        except MeetingProvisioningError:
            error = None
        if error == "invalid_grant":
            raise MeetingProvisioningError("Google access was revoked or expired; reconnect Google")
        raise MeetingProvisioningError(f"Failed to refresh Google access token: {resp.status_code}")
    return _access_token(resp, "Google token endpoint")


async def create_google_meet(
    client: httpx.AsyncClient, page: BookingURL, booking: Booking, owner: User
) -> str:
    if not owner.google_refresh_token:
        raise MeetingProvisioningError("Owner has not connected Google Calendar")
    access_token = await refresh_google_access_token(client, owner.google_refresh_token)
    event = {
        "summary": meeting_topic(page, booking),
        "start": {"dateTime": from_naive_utc(booking.start_at).isoformat(), "timeZone": page.timezone},
        "end": {"dateTime": from_naive_utc(booking.end_at).isoformat(), "timeZone": page.timezone},
        "conferenceData": {
            "createRequest": {
                "requestId": str(uuid.uuid4()),
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            }
        },
    }
    resp = await client.post(
        GOOGLE_EVENTS_URL,
        params={"conferenceDataVersion": 1},
        json=event,
        headers={"Authorization": f"Bearer {access_token}"},
    )
    if resp.status_code == 401:
        raise MeetingProvisioningError("Google authorization is no longer valid; reconnect Google")
    if resp.status_code not in (200, 201):
        logger.warning("Google Calendar API error: status=%s body=%s", resp.status_code, resp.text[:500])
        raise MeetingProvisioningError(f"Failed to create calendar event: {resp.status_code}")
    entry_points = (_json(resp, "Google Calendar API").get("conferenceData") or {}).get("entryPoints") or []
    for entry in entry_points:
        if isinstance(entry, dict) and entry.get("entryPointType") == "video" and entry.get("uri"):
            return entry["uri"]
    raise MeetingProvisioningError("Calendar event has no Meet link")


Provider = Callable[[httpx.AsyncClient, BookingURL, Booking, User], Awaitable[str]]

PROVIDERS: dict[str, Provider] = {
    MeetingType.zoom.value: create_zoom_meeting,
    MeetingType.google_meet.value: create_google_meet,
}


async def provision_meeting(page: BookingURL, booking: Booking, owner: User) -> str | None:
    """Create a meeting link for the booking, or None.

    Provider failures are logged and reported as None; the booking itself
    stands and a link can be attached later.
    """
    provider = PROVIDERS.get(booking.meeting_type)
    if provider is None:
        return None
    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            return await provider(client, page, booking, owner)
    except MeetingProvisioningError as e:
        logger.warning("Meeting not created for booking %s (%s): %s", booking.id, booking.meeting_type, e)
    except httpx.HTTPError as e:
        logger.exception("Meeting provider request failed for booking %s: %s", booking.id, e)
    except Exception as e:
        logger.exception("Unexpected error creating meeting for booking %s: %s", booking.id, e)
    return None
