from datetime import timedelta

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from nevermiss.core.clock import to_naive_utc, utc_naive_now, utc_now
from nevermiss.core.config import settings
from nevermiss.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)
from nevermiss.models.refresh_token import RefreshToken
from nevermiss.models.user import User, UserCreate, UserPublic, UserUpdate


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user(session: AsyncSession, user_id: int) -> User | None:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def create_user(session: AsyncSession, data: UserCreate) -> User:
    user = User(
        email=data.email.lower(),
        full_name=data.full_name,
        hashed_password=hash_password(data.password),
        is_google_account=False,
    )
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


async def update_user(session: AsyncSession, user: User, data: UserUpdate) -> User:
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(user, key, value)
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


def user_to_public(user: User) -> UserPublic:
    return UserPublic(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        is_google_account=user.is_google_account,
        google_calendar_connected=bool(user.google_refresh_token),
    )


def make_token_pair(user_id: int) -> tuple[str, str, int]:
    access = create_access_token(user_id)
    refresh = create_refresh_token(user_id)
    expires_in = settings.access_token_expire_minutes * 60
    return access, refresh, expires_in


async def store_refresh_token(
    session: AsyncSession, user_id: int, refresh_token: str
) -> None:
    user_id_str, jti = decode_refresh_token(refresh_token)
    if not user_id_str or not jti:
        return
    expires_at = to_naive_utc(utc_now() + timedelta(days=settings.refresh_token_expire_days))
    session.add(RefreshToken(user_id=user_id, jti=jti, expires_at=expires_at))
    await session.flush()


async def issue_tokens(session: AsyncSession, user: User) -> tuple[User, str, str, int]:
    access, refresh, expires_in = make_token_pair(user.id)
    await store_refresh_token(session, user_id=user.id, refresh_token=refresh)
    return user, access, refresh, expires_in


async def login_user(
    session: AsyncSession, email: str, password: str
) -> tuple[User, str, str, int] | None:
    user = await get_user_by_email(session, email)
    if not user or not user.hashed_password:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return await issue_tokens(session, user)


async def signup_user(
    session: AsyncSession, email: str, password: str, full_name: str | None = None
) -> tuple[User, str, str, int] | None:
    existing = await get_user_by_email(session, email)
    if existing:
        return None
    user = await create_user(
        session, UserCreate(email=email, password=password, full_name=full_name)
    )
    return await issue_tokens(session, user)


async def revoke_refresh_token(session: AsyncSession, jti: str) -> None:
    result = await session.execute(select(RefreshToken).where(RefreshToken.jti == jti))
    row = result.scalar_one_or_none()
    if row:
        row.revoked = True
        session.add(row)


async def refresh_tokens(
    session: AsyncSession, refresh_token: str
) -> tuple[User, str, str, int] | None:
    user_id_str, jti = decode_refresh_token(refresh_token)
    if not user_id_str or not jti:
        return None
    result = await session.execute(
        select(RefreshToken).where(
            RefreshToken.jti == jti,
            RefreshToken.revoked == False,  # noqa: E712
            RefreshToken.expires_at > utc_naive_now(),
        )
    )
    token_row = result.scalar_one_or_none()
    if not token_row:
        return None
    user = await get_user(session, int(user_id_str))
    if not user:
        return None
    # rotate: the presented token cannot be used again
    token_row.revoked = True
    session.add(token_row)
    return await issue_tokens(session, user)


async def purge_refresh_tokens(session: AsyncSession) -> int:
    """Delete revoked or expired refresh tokens. Returns count deleted."""
    result = await session.execute(
        delete(RefreshToken).where(
            or_(
                RefreshToken.revoked == True,  # noqa: E712
                RefreshToken.expires_at <= utc_naive_now(),
            )
        )
    )
    await session.flush()
    return result.rowcount or 0
