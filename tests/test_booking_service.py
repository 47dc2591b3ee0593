from datetime import UTC, datetime

from conftest import NOW, create_page, signup
from nevermiss.core.db import async_session_maker
from nevermiss.models.booking import BookingCreate
from nevermiss.services import booking_service
from nevermiss.services.booking_service import BookingError, check_double_booking, create_booking
from nevermiss.services.booking_url_service import get_booking_url_by_slug


def at(hour: int) -> datetime:
    return datetime(2026, 10, 19, hour, tzinfo=UTC)


async def _create(slug: str, hour: int, name: str):
    async with async_session_maker() as session:
        page = await get_booking_url_by_slug(session, slug)
        outcome = await create_booking(
            session, page, BookingCreate(guest_name=name, start_at=at(hour), end_at=at(hour + 1)), NOW
        )
        if outcome.ok:
            await session.commit()
        return outcome


async def test_storage_constraint_catches_stale_check(client, owner_headers, monkeypatch):
    page = await create_page(client, owner_headers)
    assert (await _create(page["slug"], 11, "First")).ok

    async def stale_read(*args, **kwargs):
        return []

    # simulate a concurrent writer that committed after our read
    monkeypatch.setattr(booking_service, "confirmed_ranges", stale_read)
    outcome = await _create(page["slug"], 11, "Second")
    assert not outcome.ok
    assert outcome.error == BookingError.slot_unavailable


async def test_inactive_page_cannot_take_bookings(client, owner_headers):
    page = await create_page(client, owner_headers)
    await client.delete(f"/api/v1/booking-urls/{page['id']}", headers=owner_headers)
    outcome = await _create(page["slug"], 11, "Guest")
    assert outcome.error == BookingError.page_unavailable


async def test_check_double_booking_with_exclusion(client, owner_headers):
    page = await create_page(client, owner_headers)
    outcome = await _create(page["slug"], 11, "Guest")
    booking_id = outcome.booking.id
    user_id = outcome.booking.user_id

    async with async_session_maker() as session:
        assert await check_double_booking(session, user_id, at(11), at(12))
        assert not await check_double_booking(session, user_id, at(12), at(13))
        assert not await check_double_booking(session, user_id, at(11), at(12), exclude_booking_id=booking_id)


async def test_owner_booking_endpoints(client, owner_headers):
    page = await create_page(client, owner_headers)
    await _create(page["slug"], 11, "Early")
    await _create(page["slug"], 14, "Late")

    resp = await client.get(
        "/api/v1/bookings",
        params={"start": "2026-10-19T00:00:00Z", "end": "2026-10-20T00:00:00Z"},
        headers=owner_headers,
    )
    assert resp.status_code == 200
    bookings = resp.json()
    assert [b["guest_name"] for b in bookings] == ["Early", "Late"]

    resp = await client.get(
        "/api/v1/bookings/conflicts",
        params={"start": "2026-10-19T11:30:00Z", "end": "2026-10-19T12:30:00Z"},
        headers=owner_headers,
    )
    assert resp.json() == {"conflict": True}

    resp = await client.get(f"/api/v1/bookings/{bookings[0]['id']}", headers=owner_headers)
    assert resp.status_code == 200
    assert resp.json()["public_id"] == bookings[0]["public_id"]

    # same-day bookings are past the cancel deadline
    resp = await client.post(f"/api/v1/bookings/{bookings[0]['id']}/cancel", headers=owner_headers)
    assert resp.status_code == 409


async def test_owner_cannot_see_other_owners_bookings(client, owner_headers):
    page = await create_page(client, owner_headers)
    outcome = await _create(page["slug"], 11, "Guest")
    other = await signup(client, "other@example.com")
    resp = await client.get(f"/api/v1/bookings/{outcome.booking.id}", headers=other)
    assert resp.status_code == 404


async def test_bookings_range_must_be_ordered(client, owner_headers):
    resp = await client.get(
        "/api/v1/bookings",
        params={"start": "2026-10-20T00:00:00Z", "end": "2026-10-19T00:00:00Z"},
        headers=owner_headers,
    )
    assert resp.status_code == 422
