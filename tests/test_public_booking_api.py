from datetime import datetime, timedelta

import pytest

from conftest import NOW, create_page
from nevermiss.services import meeting_service

MONDAY = "2026-10-19"
NEXT_MONDAY = "2026-10-26"


def iso(day: str, hour: int, minute: int = 0) -> str:
    return f"{day}T{hour:02d}:{minute:02d}:00Z"


async def book(client, slug: str, day: str, hour: int, name: str = "Guest", minutes: int = 60):
    start = datetime.fromisoformat(iso(day, hour))
    return await client.post(
        f"/api/v1/public/{slug}/bookings",
        json={
            "guest_name": name,
            "start_at": start.isoformat(),
            "end_at": (start + timedelta(minutes=minutes)).isoformat(),
        },
    )


async def slot_starts(client, slug: str, day: str) -> list[datetime]:
    resp = await client.get(f"/api/v1/public/{slug}/slots", params={"date": day})
    assert resp.status_code == 200, resp.text
    return [datetime.fromisoformat(s["start_at"]) for s in resp.json()["slots"]]


@pytest.fixture
async def page(client, owner_headers):
    return await create_page(client, owner_headers)


async def test_public_page_hides_owner_fields(client, page):
    resp = await client.get(f"/api/v1/public/{page['slug']}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Consultation"
    assert "user_id" not in body
    assert "id" not in body


async def test_unknown_slug_is_404(client):
    resp = await client.get("/api/v1/public/nope-123456")
    assert resp.status_code == 404


async def test_expired_page_is_gone(client, owner_headers, page, clock):
    resp = await client.patch(
        f"/api/v1/booking-urls/{page['id']}",
        json={"expires_at": (NOW + timedelta(days=1)).isoformat()},
        headers=owner_headers,
    )
    assert resp.status_code == 200
    assert (await client.get(f"/api/v1/public/{page['slug']}")).status_code == 200

    clock.now = NOW + timedelta(days=2)
    resp = await client.get(f"/api/v1/public/{page['slug']}")
    assert resp.status_code == 410
    resp = await book(client, page["slug"], NEXT_MONDAY, 10)
    assert resp.status_code == 410


async def test_dates_start_today(client, page):
    resp = await client.get(f"/api/v1/public/{page['slug']}/dates")
    assert resp.status_code == 200
    dates = resp.json()["dates"]
    assert dates[0] == MONDAY
    assert "2026-10-24" not in dates  # Saturday
    assert dates[-1] <= "2026-11-18"


async def test_slots_for_a_day(client, page):
    starts = await slot_starts(client, page["slug"], MONDAY)
    assert [s.hour for s in starts] == list(range(9, 18))
    assert await slot_starts(client, page["slug"], "2026-10-18") == []


async def test_booking_removes_slot(client, page, pushes):
    resp = await book(client, page["slug"], MONDAY, 13)
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["meeting_error"] is None
    booking = body["booking"]
    assert booking["status"] == "confirmed"
    assert booking["location_address"] == "1-1 Chiyoda, Tokyo"
    assert datetime.fromisoformat(booking["start_at"]) == datetime.fromisoformat(iso(MONDAY, 13))

    starts = await slot_starts(client, page["slug"], MONDAY)
    assert 13 not in [s.hour for s in starts]
    assert len(starts) == 8
    assert len(pushes) == 1
    assert pushes[0]["title"] == "New booking"


async def test_double_booking_is_rejected(client, page, pushes):
    assert (await book(client, page["slug"], MONDAY, 13)).status_code == 201
    resp = await book(client, page["slug"], MONDAY, 13, name="Late guest")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "This time is no longer available, please choose another."


async def test_conflicts_are_owner_wide(client, owner_headers, page, pushes):
    other = await create_page(client, owner_headers, title="Short call", duration_minutes=30)
    assert (await book(client, page["slug"], MONDAY, 13)).status_code == 201

    starts = await slot_starts(client, other["slug"], MONDAY)
    assert datetime.fromisoformat(iso(MONDAY, 13)) not in starts
    assert datetime.fromisoformat(iso(MONDAY, 14)) in starts

    resp = await book(client, other["slug"], MONDAY, 13, minutes=30)
    assert resp.status_code == 409


async def test_time_outside_offered_slots(client, page):
    start = datetime.fromisoformat(iso(MONDAY, 10, 30))
    resp = await client.post(
        f"/api/v1/public/{page['slug']}/bookings",
        json={
            "guest_name": "Guest",
            "start_at": start.isoformat(),
            "end_at": (start + timedelta(hours=1)).isoformat(),
        },
    )
    assert resp.status_code == 422
    # inside the notice period
    assert (await book(client, page["slug"], MONDAY, 7)).status_code == 422


async def test_inverted_interval_is_rejected(client, page):
    resp = await client.post(
        f"/api/v1/public/{page['slug']}/bookings",
        json={"guest_name": "Guest", "start_at": iso(MONDAY, 11), "end_at": iso(MONDAY, 10)},
    )
    assert resp.status_code == 422


async def test_mixed_naive_and_aware_interval(client, page, pushes):
    # naive end equal to the aware start once read as UTC
    resp = await client.post(
        f"/api/v1/public/{page['slug']}/bookings",
        json={"guest_name": "Guest", "start_at": iso(MONDAY, 9), "end_at": f"{MONDAY}T09:00:00"},
    )
    assert resp.status_code == 422

    resp = await client.post(
        f"/api/v1/public/{page['slug']}/bookings",
        json={"guest_name": "Guest", "start_at": f"{MONDAY}T09:00:00", "end_at": iso(MONDAY, 10)},
    )
    assert resp.status_code == 201, resp.text


async def test_guest_can_view_and_cancel_before_deadline(client, page, pushes):
    resp = await book(client, page["slug"], NEXT_MONDAY, 10)
    booking = resp.json()["booking"]
    assert booking["can_cancel"] is True
    url = f"/api/v1/public/{page['slug']}/bookings/{booking['public_id']}"

    resp = await client.get(url)
    assert resp.status_code == 200
    assert resp.json()["guest_name"] == "Guest"

    resp = await client.post(f"{url}/cancel")
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["can_cancel"] is False
    assert pushes[-1]["title"] == "Booking cancelled"

    starts = await slot_starts(client, page["slug"], NEXT_MONDAY)
    assert datetime.fromisoformat(iso(NEXT_MONDAY, 10)) in starts

    # already cancelled
    assert (await client.post(f"{url}/cancel")).status_code == 409


async def test_cancel_after_deadline_is_refused(client, page, pushes):
    resp = await book(client, page["slug"], MONDAY, 10)
    booking = resp.json()["booking"]
    assert booking["can_cancel"] is False
    resp = await client.post(f"/api/v1/public/{page['slug']}/bookings/{booking['public_id']}/cancel")
    assert resp.status_code == 409


async def test_unknown_public_id(client, page):
    resp = await client.get(f"/api/v1/public/{page['slug']}/bookings/does-not-exist")
    assert resp.status_code == 404


async def test_zoom_booking_gets_meeting_link(client, owner_headers, pushes, monkeypatch):
    calls = []

    async def fake_zoom(http_client, page, booking, owner):
        calls.append(booking.id)
        return "https://zoom.us/j/123456"

    monkeypatch.setitem(meeting_service.PROVIDERS, "zoom", fake_zoom)
    page = await create_page(client, owner_headers, meeting_type="zoom", location_address=None)
    resp = await book(client, page["slug"], MONDAY, 9)
    assert resp.status_code == 201
    body = resp.json()
    assert body["booking"]["meeting_url"] == "https://zoom.us/j/123456"
    assert body["meeting_error"] is None
    assert len(calls) == 1


async def test_meeting_failure_keeps_booking(client, owner_headers, pushes):
    # Zoom credentials are not configured in tests
    page = await create_page(client, owner_headers, meeting_type="zoom", location_address=None)
    resp = await book(client, page["slug"], MONDAY, 9)
    assert resp.status_code == 201
    body = resp.json()
    assert body["booking"]["meeting_url"] is None
    assert body["meeting_error"]

    starts = await slot_starts(client, page["slug"], MONDAY)
    assert 9 not in [s.hour for s in starts]


async def test_provider_crash_after_commit_still_confirms(client, owner_headers, pushes, monkeypatch):
    async def broken_zoom(http_client, page, booking, owner):
        raise KeyError("access_token")

    monkeypatch.setitem(meeting_service.PROVIDERS, "zoom", broken_zoom)
    page = await create_page(client, owner_headers, meeting_type="zoom", location_address=None)
    resp = await book(client, page["slug"], MONDAY, 9)
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["booking"]["meeting_url"] is None
    assert body["meeting_error"]

    assert len(pushes) == 1
    notifications = (await client.get("/api/v1/notifications", headers=owner_headers)).json()
    assert notifications["unread_count"] == 1
