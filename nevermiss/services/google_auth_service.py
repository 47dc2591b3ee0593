import base64
import logging
from urllib.parse import urlencode

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from nevermiss.core.config import settings
from nevermiss.models.user import User
from nevermiss.services.auth_service import get_user_by_email

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
# calendar.events lets us create events with Google Meet conference data
GOOGLE_SCOPES = "openid email profile https://www.googleapis.com/auth/calendar.events"


def encode_state(redirect_uri: str) -> str:
    return base64.urlsafe_b64encode(redirect_uri.encode()).decode().rstrip("=")


def decode_state(state: str) -> str | None:
    try:
        padded = state + "=" * (-len(state) % 4)
        return base64.urlsafe_b64decode(padded).decode()
    except (ValueError, UnicodeDecodeError):
        return None


def get_google_authorization_url(state: str | None = None, redirect_uri: str | None = None) -> str:
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": GOOGLE_SCOPES,
        "access_type": "offline",
        "prompt": "consent",
    }
    # State: if redirect_uri given, encode it so callback can redirect there with tokens
    if redirect_uri:
        params["state"] = encode_state(redirect_uri)
    elif state:
        params["state"] = state
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_code_for_tokens(code: str) -> dict | None:
    if not settings.google_oauth_enabled:
        logger.warning("Google OAuth not configured")
        return None
    if not settings.google_redirect_uri:
        logger.warning("GOOGLE_REDIRECT_URI not set")
        return None
    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "redirect_uri": settings.google_redirect_uri,
                "grant_type": "authorization_code",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if resp.status_code != 200:
            logger.warning(
                "Google token exchange failed: status=%s body=%s redirect_uri=%s",
                resp.status_code,
                resp.text[:500],
                settings.google_redirect_uri,
            )
            return None
        return resp.json()


async def get_google_user_info(access_token: str) -> dict | None:
    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if resp.status_code != 200:
            return None
        return resp.json()


async def get_or_create_google_user(
    session: AsyncSession,
    email: str,
    name: str | None,
    refresh_token: str | None = None,
) -> User:
    user = await get_user_by_email(session, email)
    if user is None:
        user = User(
            email=email.lower(),
            full_name=name or email.split("@")[0],
            hashed_password=None,
            is_google_account=True,
        )
    user.is_google_account = True
    # Google only returns a refresh token on consent; keep the old one otherwise
    if refresh_token:
        user.google_refresh_token = refresh_token
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user
