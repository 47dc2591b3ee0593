"""
Pytest configuration and shared fixtures.

Settings are read at import time, so the environment is prepared before any
nevermiss module is imported.
"""

import os
import tempfile
from datetime import UTC, datetime

_DB_DIR = tempfile.mkdtemp(prefix="nevermiss-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["DATABASE_SSL"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENV"] = "test"
os.environ["CORS_ORIGINS"] = "http://localhost:3000"
for _key in ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "ZOOM_ACCOUNT_ID", "ZOOM_CLIENT_ID", "ZOOM_CLIENT_SECRET"):
    os.environ[_key] = ""

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import nevermiss.models  # noqa: E402,F401
from nevermiss.api.deps import get_now  # noqa: E402
from nevermiss.core.db import engine, init_db  # noqa: E402
from nevermiss.main import app  # noqa: E402

# Monday
NOW = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)


class Clock:
    """Mutable stand-in for the request clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(autouse=True)
async def _database():
    await init_db()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def clock():
    c = Clock(NOW)
    app.dependency_overrides[get_now] = c
    yield c
    app.dependency_overrides.pop(get_now, None)


@pytest.fixture
async def client(clock):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def pushes(monkeypatch):
    """Capture push deliveries instead of calling Expo."""
    sent: list[dict] = []

    async def fake_send(**kwargs):
        sent.append(kwargs)

    monkeypatch.setattr("nevermiss.api.routes.public.send_expo_push", fake_send)
    return sent


async def signup(client: httpx.AsyncClient, email: str = "owner@example.com") -> dict[str, str]:
    resp = await client.post(
        "/api/v1/auth/signup",
        json={"email": email, "password": "correct-horse", "full_name": "Owner"},
    )
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
async def owner_headers(client) -> dict[str, str]:
    return await signup(client)


PAGE_PAYLOAD = {
    "title": "Consultation",
    "duration_minutes": 60,
    "meeting_type": "onsite",
    "location_address": "1-1 Chiyoda, Tokyo",
    "available_days": [1, 2, 3, 4, 5],
    "available_start_time": "09:00:00",
    "available_end_time": "18:00:00",
    "timezone": "UTC",
    "min_notice_hours": 0,
    "max_days_ahead": 30,
}


async def create_page(client: httpx.AsyncClient, headers: dict[str, str], **overrides) -> dict:
    resp = await client.post("/api/v1/booking-urls", json={**PAGE_PAYLOAD, **overrides}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()
