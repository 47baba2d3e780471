"""Credential Store - identity lookups and security-state mutations.

Only the Session Manager and the admin moderation paths call the mutators
here. Methods flush but never commit; the caller owns the transaction.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from versenest.core.database import with_db_timeout
from versenest.core.errors import ConflictError
from versenest.models.base import utcnow
from versenest.models.user import Role, User
from versenest.services.profiles import Profile, apply_profile

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore:
    """Persistence for User rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @with_db_timeout
    async def get_by_id(self, user_id: UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @with_db_timeout
    async def get_by_email(self, email: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    @with_db_timeout
    async def admin_exists(self) -> bool:
        result = await self.session.execute(
            select(func.count(User.id)).where(User.role == Role.ADMIN.value)
        )
        return (result.scalar() or 0) > 0

    @with_db_timeout
    async def create(self, email: str, password_hash: str, profile: Profile) -> User:
        """Insert a user whose password has already been hashed."""
        user = User(
            email=normalize_email(email),
            password_hash=password_hash,
            is_active=True,
            is_verified=False,
            failed_login_attempts=0,
            token_version=1,
        )
        apply_profile(user, profile)
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError("An account with this email already exists") from e
        return user

    @with_db_timeout
    async def record_failed_login(
        self, user: User, max_attempts: int, lockout: timedelta
    ) -> bool:
        """Count a failed password check. Returns True when this attempt locks the account.

        Best-effort: concurrent failures may race on the counter.
        """
        now = utcnow()
        if user.lock_until is not None and user.lock_until <= now:
            # Previous lock elapsed; start a fresh window
            user.failed_login_attempts = 0
            user.lock_until = None

        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        locked = False
        if user.failed_login_attempts >= max_attempts and not user.is_locked(now):
            user.lock_until = now + lockout
            locked = True
        await self.session.flush()
        return locked

    @with_db_timeout
    async def record_successful_login(self, user: User) -> None:
        now = utcnow()
        user.failed_login_attempts = 0
        user.lock_until = None
        user.last_login_at = now
        user.last_active_at = now
        await self.session.flush()

    @with_db_timeout
    async def touch_activity(self, user: User) -> None:
        user.last_active_at = utcnow()
        await self.session.flush()

    @with_db_timeout
    async def set_password_hash(self, user: User, password_hash: str) -> None:
        """Store a new hash and invalidate every access token already issued."""
        user.password_hash = password_hash
        user.password_changed_at = utcnow()
        user.token_version = (user.token_version or 1) + 1
        await self.session.flush()

    @with_db_timeout
    async def bump_token_version(self, user: User) -> None:
        user.token_version = (user.token_version or 1) + 1
        await self.session.flush()

    @with_db_timeout
    async def clear_lockout(self, user: User) -> None:
        user.failed_login_attempts = 0
        user.lock_until = None
        await self.session.flush()

    @with_db_timeout
    async def set_ban(self, user: User, reason: str | None, expires_at: datetime | None) -> None:
        user.is_banned = True
        user.ban_reason = reason
        user.ban_expires_at = expires_at
        await self.session.flush()

    @with_db_timeout
    async def clear_ban(self, user: User) -> None:
        user.is_banned = False
        user.ban_reason = None
        user.ban_expires_at = None
        await self.session.flush()

    @with_db_timeout
    async def set_profile(self, user: User, profile: Profile) -> None:
        apply_profile(user, profile)
        await self.session.flush()

    @with_db_timeout
    async def soft_delete(self, user: User) -> None:
        """Deactivate without removing the row (authored content keeps its owner)."""
        user.is_active = False
        user.deleted_at = utcnow()
        await self.session.flush()

    @with_db_timeout
    async def mark_verified(self, user: User) -> None:
        user.is_verified = True
        await self.session.flush()
