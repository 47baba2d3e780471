"""Persisted credential tokens and the access-token blacklist."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from versenest.models.base import BaseModel, UTCDateTime, utcnow


class TokenType(str, Enum):
    """Kinds of token kept in the ledger.

    Access tokens are never stored; only their revocation is, as BLACKLIST
    entries keyed by the hash of the raw token string.
    """

    REFRESH = "refresh"
    BLACKLIST = "blacklist"
    RESET_PASSWORD = "reset_password"
    EMAIL_VERIFICATION = "email_verification"


class RevocationReason(str, Enum):
    """Why a token stopped being valid."""

    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    PASSWORD_CHANGE = "password_change"
    PASSWORD_RESET = "password_reset"
    ADMIN_ACTION = "admin_action"
    EXPIRED = "expired"
    SUPERSEDED = "superseded"
    SESSION_LIMIT_EXCEEDED = "session_limit_exceeded"
    USED = "used"
    MANUAL = "manual"
    SECURITY_BREACH = "security_breach"


class AuthToken(BaseModel):
    """A ledger record for one issued (or blacklisted) token.

    The raw token string is never stored: token_hash is its SHA-256 hex
    digest, so a database leak does not hand out usable credentials.
    """

    __tablename__ = "auth_tokens"
    __table_args__ = (
        Index("ix_auth_tokens_user_type_active", "user_id", "token_type", "is_active"),
        Index("ix_auth_tokens_session_active", "session_id", "is_active"),
    )

    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    token_type: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    # Session grouping and device metadata for audit
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    # Usage
    last_used_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Revocation
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    revoked_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    revocation_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)

    meta: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utcnow())

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_valid(self, now: datetime | None = None) -> bool:
        """Active, unexpired and unrevoked."""
        return self.is_active and not self.is_expired(now) and not self.is_revoked

    def __repr__(self) -> str:
        return f"<AuthToken {self.token_type} user={self.user_id} session={self.session_id}>"
