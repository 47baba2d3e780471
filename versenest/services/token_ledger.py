"""Token Ledger - durable record of issued and revoked tokens.

Holds refresh, password-reset and email-verification tokens plus the
access-token blacklist. Lookups return None for anything missing, expired,
revoked or of the wrong type; callers turn absence into an authentication
failure. Storage faults are never swallowed: every call is bounded by
with_db_timeout and surfaces DatabaseError / ServiceUnavailableError.
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from versenest.core import settings
from versenest.core.database import rowcount, with_db_timeout
from versenest.core.request_utils import DeviceInfo
from versenest.models.auth_token import AuthToken, RevocationReason, TokenType
from versenest.models.base import utcnow

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used as the lookup key for a raw token string."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_opaque_token() -> str:
    """Random URL-safe string for reset / verification links."""
    return secrets.token_urlsafe(32)


def _valid_clause(now: datetime) -> list[Any]:
    return [
        AuthToken.is_active.is_(True),
        AuthToken.revoked_at.is_(None),
        AuthToken.expires_at > now,
    ]


class TokenLedger:
    """Issue, look up and revoke persisted tokens."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @with_db_timeout
    async def issue_token(
        self,
        user_id: UUID,
        token_type: TokenType,
        ttl: timedelta,
        *,
        token: str | None = None,
        session_id: str | None = None,
        device: DeviceInfo | None = None,
        meta: dict[str, Any] | None = None,
    ) -> str:
        """Persist a token and return the raw string (only ever returned here)."""
        raw = token or generate_opaque_token()
        now = utcnow()
        record = AuthToken(
            token_hash=hash_token(raw),
            token_type=token_type.value,
            user_id=user_id,
            is_active=True,
            expires_at=now + ttl,
            session_id=session_id,
            user_agent=device.user_agent if device else None,
            ip_address=device.ip_address if device else None,
            last_used_at=now,
            usage_count=0,
            meta=meta or {},
        )
        self.session.add(record)
        await self.session.flush()
        return raw

    async def issue_refresh(
        self,
        user_id: UUID,
        session_id: str,
        device: DeviceInfo | None = None,
        *,
        token: str | None = None,
        ttl: timedelta | None = None,
    ) -> str:
        """Persist a refresh token for one session (default TTL from settings)."""
        return await self.issue_token(
            user_id,
            TokenType.REFRESH,
            ttl or timedelta(days=settings.refresh_token_expire_days),
            token=token,
            session_id=session_id,
            device=device,
        )

    @with_db_timeout
    async def find_valid(self, token: str, token_type: TokenType) -> AuthToken | None:
        """Return the record only if active, unexpired, unrevoked and of this type."""
        result = await self.session.execute(
            select(AuthToken).where(
                AuthToken.token_hash == hash_token(token),
                AuthToken.token_type == token_type.value,
                *_valid_clause(utcnow()),
            )
        )
        return result.scalar_one_or_none()

    @with_db_timeout
    async def find_any(self, token: str, token_type: TokenType) -> AuthToken | None:
        """Return the record regardless of state (for reuse detection)."""
        result = await self.session.execute(
            select(AuthToken).where(
                AuthToken.token_hash == hash_token(token),
                AuthToken.token_type == token_type.value,
            )
        )
        return result.scalar_one_or_none()

    @with_db_timeout
    async def blacklist(
        self,
        token: str,
        user_id: UUID,
        reason: RevocationReason,
        expires_at: datetime,
        *,
        session_id: str | None = None,
    ) -> bool:
        """Deny an access token until its own expiry.

        The entry mirrors the remaining lifetime of the original token so the
        sweep removes it once the token could no longer verify anyway.
        Returns False when there was nothing to do (already listed or expired).
        """
        now = utcnow()
        if expires_at <= now:
            return False

        token_hash = hash_token(token)
        if await self._is_listed(token_hash):
            return False

        try:
            # Savepoint so a concurrent duplicate only discards this insert
            async with self.session.begin_nested():
                self.session.add(
                    AuthToken(
                        token_hash=token_hash,
                        token_type=TokenType.BLACKLIST.value,
                        user_id=user_id,
                        is_active=True,
                        expires_at=expires_at,
                        session_id=session_id,
                        last_used_at=now,
                        meta={"reason": reason.value},
                    )
                )
        except IntegrityError:
            logger.debug("Token already blacklisted by a concurrent request")
            return False
        return True

    async def _is_listed(self, token_hash: str) -> bool:
        existing = await self.session.execute(
            select(AuthToken.id).where(AuthToken.token_hash == token_hash)
        )
        return existing.scalar_one_or_none() is not None

    @with_db_timeout
    async def is_blacklisted(self, token: str) -> bool:
        result = await self.session.execute(
            select(AuthToken.id).where(
                AuthToken.token_hash == hash_token(token),
                AuthToken.token_type == TokenType.BLACKLIST.value,
                AuthToken.is_active.is_(True),
                AuthToken.expires_at > utcnow(),
            )
        )
        return result.first() is not None

    @with_db_timeout
    async def revoke(
        self,
        record: AuthToken,
        reason: RevocationReason,
        revoked_by: UUID | None = None,
    ) -> bool:
        """Mark one token revoked. Revoking an already-revoked token is a no-op."""
        if record.revoked_at is not None:
            return False
        record.is_active = False
        record.revoked_at = utcnow()
        record.revocation_reason = reason.value
        record.revoked_by = revoked_by
        await self.session.flush()
        return True

    @with_db_timeout
    async def record_use(self, record: AuthToken) -> None:
        record.last_used_at = utcnow()
        record.usage_count = (record.usage_count or 0) + 1
        await self.session.flush()

    async def _revoke_where(
        self,
        reason: RevocationReason,
        revoked_by: UUID | None,
        *criteria: Any,
    ) -> int:
        # Blacklist entries are denials, not credentials; they stay active.
        result = await self.session.execute(
            update(AuthToken)
            .where(
                AuthToken.token_type != TokenType.BLACKLIST.value,
                AuthToken.is_active.is_(True),
                AuthToken.revoked_at.is_(None),
                *criteria,
            )
            .values(
                is_active=False,
                revoked_at=utcnow(),
                revocation_reason=reason.value,
                revoked_by=revoked_by,
            )
            .execution_options(synchronize_session="evaluate")
        )
        return rowcount(result)

    @with_db_timeout
    async def revoke_session(
        self,
        user_id: UUID,
        session_id: str,
        reason: RevocationReason,
        revoked_by: UUID | None = None,
    ) -> int:
        """Revoke every live token belonging to one session."""
        return await self._revoke_where(
            reason,
            revoked_by,
            AuthToken.user_id == user_id,
            AuthToken.session_id == session_id,
        )

    @with_db_timeout
    async def revoke_all_for_user(
        self,
        user_id: UUID,
        reason: RevocationReason,
        revoked_by: UUID | None = None,
        *,
        token_types: list[TokenType] | None = None,
    ) -> int:
        """Revoke every live token of a user in a single UPDATE statement."""
        criteria: list[Any] = [AuthToken.user_id == user_id]
        if token_types:
            criteria.append(AuthToken.token_type.in_([t.value for t in token_types]))
        count = await self._revoke_where(reason, revoked_by, *criteria)
        logger.info(f"Revoked {count} token(s) for user {user_id} ({reason.value})")
        return count

    @with_db_timeout
    async def list_active_sessions(self, user_id: UUID) -> list[AuthToken]:
        """Valid refresh tokens for a user, most recently used first."""
        result = await self.session.execute(
            select(AuthToken)
            .where(
                AuthToken.user_id == user_id,
                AuthToken.token_type == TokenType.REFRESH.value,
                *_valid_clause(utcnow()),
            )
            .order_by(AuthToken.last_used_at.desc(), AuthToken.created_at.desc())
        )
        return list(result.scalars().all())

    async def cap_concurrent_sessions(self, user_id: UUID, max_sessions: int) -> int:
        """Revoke the least recently used sessions beyond max_sessions.

        Read-then-revoke without a lock: two concurrent logins can leave the
        count briefly above the cap until the next capping pass.
        """
        sessions = await self.list_active_sessions(user_id)
        excess = sessions[max_sessions:]
        if not excess:
            return 0
        return await self._revoke_ids(
            [record.id for record in excess], RevocationReason.SESSION_LIMIT_EXCEEDED
        )

    @with_db_timeout
    async def _revoke_ids(self, ids: list[UUID], reason: RevocationReason) -> int:
        return await self._revoke_where(reason, None, AuthToken.id.in_(ids))

    @with_db_timeout
    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete records past their expiry. Hygiene only; checks never rely on it."""
        result = await self.session.execute(
            delete(AuthToken)
            .where(AuthToken.expires_at <= (now or utcnow()))
            .execution_options(synchronize_session=False)
        )
        return rowcount(result)
