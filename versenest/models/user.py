"""User model - the identity every credential is issued to."""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from versenest.models.base import BaseModel, UTCDateTime, utcnow


class Role(str, Enum):
    """Account roles."""

    READER = "reader"
    WRITER = "writer"
    ADMIN = "admin"


class User(BaseModel):
    """An account.

    Holds the Argon2id password hash, role, and the lockout/ban state the
    session layer consults before issuing credentials. Accounts are never
    hard-deleted; deactivation sets deleted_at so authored content keeps a
    valid owner.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    # Profile (role-specific fields are validated by services.profiles)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    pen_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    genres: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    mood_preferences: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Account status
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Lockout
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Moderation
    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ban_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    ban_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Tracking
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_active_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    password_changed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Embedded in access tokens; bump to invalidate every outstanding token
    token_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def is_locked(self, now: datetime | None = None) -> bool:
        return self.lock_until is not None and self.lock_until > (now or utcnow())

    def is_currently_banned(self, now: datetime | None = None) -> bool:
        if not self.is_banned:
            return False
        if self.ban_expires_at is None:
            return True  # Permanent ban
        return self.ban_expires_at > (now or utcnow())

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def display_name(self) -> str:
        if self.role == Role.WRITER.value and self.pen_name:
            return self.pen_name
        return self.full_name

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
