from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from nevermiss.core.clock import utc_naive_now


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    full_name: str | None = None
    is_google_account: bool = False


class User(UserBase, table=True):
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    hashed_password: str | None = None  # None for Google-only users
    # Offline token from Google sign-in; needed to create Google Meet links
    google_refresh_token: str | None = None
    created_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime)


class UserCreate(SQLModel):
    email: str
    password: str
    full_name: str | None = None


class UserUpdate(SQLModel):
    full_name: str | None = None


class UserPublic(SQLModel):
    id: int
    email: str
    full_name: str | None = None
    is_google_account: bool
    google_calendar_connected: bool = False
