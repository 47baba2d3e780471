"""Per-IP failed-login throttle backed by the login_throttles table.

Counters live in the shared database so every instance sees the same
window. Only failed attempts count; a successful login clears the key.
"""

import logging
import math
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from versenest.core import settings
from versenest.core.database import rowcount, with_db_timeout
from versenest.core.errors import RateLimitError
from versenest.models.base import utcnow
from versenest.models.login_throttle import LoginThrottle

logger = logging.getLogger(__name__)


class LoginThrottleService:
    """Fixed-window counter of failed logins per client address."""

    def __init__(
        self,
        session: AsyncSession,
        max_attempts: int | None = None,
        window_seconds: int | None = None,
    ):
        self.session = session
        self.max_attempts = max_attempts or settings.login_rate_limit_attempts
        self.window = timedelta(seconds=window_seconds or settings.login_rate_limit_window_seconds)

    @with_db_timeout
    async def _get(self, key: str) -> LoginThrottle | None:
        result = await self.session.execute(select(LoginThrottle).where(LoginThrottle.key == key))
        return result.scalar_one_or_none()

    async def check(self, key: str | None) -> None:
        """Raise RateLimitError if the key has used up its window."""
        if not key:
            return
        entry = await self._get(key)
        if entry is None:
            return
        window_end = entry.window_started_at + self.window
        now = utcnow()
        if window_end <= now:
            return
        if entry.attempts >= self.max_attempts:
            retry_after = max(1, math.ceil((window_end - now).total_seconds()))
            logger.warning(f"Login throttle exceeded for {key}")
            raise RateLimitError(
                "Too many failed login attempts. Please try again later.",
                retry_after=retry_after,
            )

    @with_db_timeout
    async def record_failure(self, key: str | None) -> int:
        """Count one failure and return the attempts in the current window."""
        if not key:
            return 0
        now = utcnow()
        result = await self.session.execute(select(LoginThrottle).where(LoginThrottle.key == key))
        entry = result.scalar_one_or_none()
        if entry is None:
            entry = LoginThrottle(key=key, window_started_at=now, attempts=0)
            self.session.add(entry)
        elif entry.window_started_at + self.window <= now:
            entry.window_started_at = now
            entry.attempts = 0
        entry.attempts += 1
        await self.session.flush()
        return entry.attempts

    @with_db_timeout
    async def reset(self, key: str | None) -> None:
        if not key:
            return
        await self.session.execute(
            delete(LoginThrottle)
            .where(LoginThrottle.key == key)
            .execution_options(synchronize_session=False)
        )

    @with_db_timeout
    async def purge_stale(self) -> int:
        """Delete windows that have fully elapsed."""
        cutoff = utcnow() - self.window
        result = await self.session.execute(
            delete(LoginThrottle)
            .where(LoginThrottle.window_started_at <= cutoff)
            .execution_options(synchronize_session=False)
        )
        return rowcount(result)
