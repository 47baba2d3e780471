"""Session Manager - the only component that mints tokens or changes credential state.

Owns the login / registration / refresh / logout / password state machine
and the admin moderation actions. Composes the Credential Store, Token
Ledger and Token Codec. Every state change is committed here explicitly so
that failure bookkeeping (failed-attempt counters, reuse revocation) is
persisted even when the operation then raises.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from versenest.core import settings
from versenest.core.database import with_db_timeout
from versenest.core.errors import (
    AccountBannedError,
    AccountInactiveError,
    AccountLockedError,
    AuthorizationError,
    ConflictError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from versenest.core.request_utils import DeviceInfo
from versenest.models.auth_token import AuthToken, RevocationReason, TokenType
from versenest.models.base import utcnow
from versenest.models.user import Role, User
from versenest.services.audit import AuditAction, AuditService, get_audit_service
from versenest.services.credential_store import CredentialStore
from versenest.services.login_throttle import LoginThrottleService
from versenest.services.passwords import (
    burn_verification,
    hash_password,
    needs_rehash,
    password_policy_violations,
    verify_password,
)
from versenest.services.profiles import build_profile, convert_profile
from versenest.services.token_codec import TokenCodec, get_token_codec
from versenest.services.token_ledger import TokenLedger

logger = logging.getLogger(__name__)

PASSWORD_RESET_MESSAGE = "If an account with that email exists, a reset link has been sent."

_PUBLIC_ROLES = {Role.READER, Role.WRITER}


class TokenDelivery(Protocol):
    """Hands a one-time token (reset / verification) to the account owner."""

    async def deliver(
        self, user: User, purpose: TokenType, token: str, expires_at: datetime
    ) -> None: ...


class LoggingTokenDelivery:
    """Default delivery: records that a token was issued, never the token itself."""

    async def deliver(
        self, user: User, purpose: TokenType, token: str, expires_at: datetime
    ) -> None:
        logger.info(f"Issued {purpose.value} token for user {user.id} (expires {expires_at})")


_default_delivery = LoggingTokenDelivery()


def get_token_delivery() -> TokenDelivery:
    """FastAPI dependency for the configured token delivery."""
    return _default_delivery


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    session_id: str
    expires_in: int
    refresh_expires_in: int
    token_type: str = "bearer"


@dataclass(frozen=True)
class AuthResult:
    user: User
    tokens: TokenPair


@dataclass(frozen=True)
class RefreshResult:
    user: User
    access_token: str
    session_id: str
    expires_in: int
    refresh_token: str | None = None


def _new_session_id() -> str:
    return secrets.token_hex(16)


def _check_password_policy(password: str) -> None:
    problems = password_policy_violations(password)
    if problems:
        raise ValidationError("Password does not meet requirements", details=problems)


class SessionManager:
    """Authentication workflows over one database session."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        codec: TokenCodec | None = None,
        delivery: TokenDelivery | None = None,
        audit: AuditService | None = None,
        rotate_refresh_tokens: bool | None = None,
    ):
        self.session = session
        self.store = CredentialStore(session)
        self.ledger = TokenLedger(session)
        self.throttle = LoginThrottleService(session)
        self.codec = codec or get_token_codec()
        self.delivery = delivery or _default_delivery
        self.audit = audit or get_audit_service()
        self.rotate_refresh_tokens = (
            settings.refresh_token_rotation
            if rotate_refresh_tokens is None
            else rotate_refresh_tokens
        )

    @with_db_timeout
    async def _commit(self) -> None:
        await self.session.commit()

    async def _start_session(self, user: User, device: DeviceInfo | None) -> TokenPair:
        """Issue a fresh access/refresh pair under a new session id."""
        session_id = _new_session_id()
        access_token = self.codec.issue_access(
            user.id, user.role, session_id=session_id, token_version=user.token_version
        )
        refresh_token = self.codec.issue_refresh(user.id, user.role, session_id)
        await self.ledger.issue_refresh(
            user.id, session_id, device, token=refresh_token, ttl=self.codec.refresh_ttl
        )

        revoked = await self.ledger.cap_concurrent_sessions(
            user.id, settings.max_concurrent_sessions
        )
        if revoked:
            self.audit.log(
                AuditAction.SESSION_LIMIT_ENFORCED,
                user.id,
                ip_address=device.ip_address if device else None,
                reason=RevocationReason.SESSION_LIMIT_EXCEEDED.value,
                details={"revoked_sessions": revoked},
            )

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            session_id=session_id,
            expires_in=int(self.codec.access_ttl.total_seconds()),
            refresh_expires_in=int(self.codec.refresh_ttl.total_seconds()),
        )

    async def _require_user(self, user_id: UUID) -> User:
        user = await self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # --- registration and login -------------------------------------------

    async def register(
        self,
        email: str,
        password: str,
        role: Role | str,
        full_name: str,
        *,
        device: DeviceInfo | None = None,
        allow_admin: bool = False,
        **profile_fields: Any,
    ) -> AuthResult:
        """Create an account and sign it in.

        Role-specific fields are validated by the role's profile variant.
        Admin accounts can only be created with allow_admin (bootstrap script
        or an existing admin).
        """
        profile = build_profile(role, full_name, **profile_fields)
        if profile.role not in _PUBLIC_ROLES and not allow_admin:
            raise ValidationError("Role must be reader or writer")
        _check_password_policy(password)

        if await self.store.get_by_email(email) is not None:
            raise ConflictError("An account with this email already exists")

        password_hash = await hash_password(password)
        user = await self.store.create(email, password_hash, profile)
        await self.store.record_successful_login(user)
        tokens = await self._start_session(user, device)
        await self._commit()

        self.audit.log(
            AuditAction.REGISTER,
            user.id,
            ip_address=device.ip_address if device else None,
            details={"role": user.role},
        )
        return AuthResult(user=user, tokens=tokens)

    async def login(
        self, email: str, password: str, device: DeviceInfo | None = None
    ) -> AuthResult:
        """Verify credentials and open a new session.

        Unknown email and wrong password produce the same InvalidCredentialsError.
        A locked account is rejected before the password is checked.
        """
        ip_address = device.ip_address if device else None
        await self.throttle.check(ip_address)

        user = await self.store.get_by_email(email)
        if user is None:
            await burn_verification(password)
            await self.throttle.record_failure(ip_address)
            await self._commit()
            self.audit.log(
                AuditAction.LOGIN_FAILED, ip_address=ip_address, reason="unknown_account"
            )
            raise InvalidCredentialsError()

        now = utcnow()
        if user.is_locked(now):
            self.audit.log(
                AuditAction.LOGIN_FAILED, user.id, ip_address=ip_address, reason="locked"
            )
            raise AccountLockedError()

        if user.is_currently_banned(now):
            self.audit.log(
                AuditAction.LOGIN_FAILED, user.id, ip_address=ip_address, reason="banned"
            )
            raise AccountBannedError()

        if not await verify_password(password, user.password_hash):
            locked = await self.store.record_failed_login(
                user,
                settings.max_login_attempts,
                timedelta(minutes=settings.lockout_duration_minutes),
            )
            await self.throttle.record_failure(ip_address)
            await self._commit()
            self.audit.log(
                AuditAction.LOGIN_FAILED,
                user.id,
                ip_address=ip_address,
                reason="bad_password",
                details={"failed_attempts": user.failed_login_attempts},
            )
            if locked:
                self.audit.log(
                    AuditAction.LOCKOUT,
                    user.id,
                    ip_address=ip_address,
                    reason="too_many_failed_attempts",
                    details={"lock_until": user.lock_until.isoformat()},
                )
            raise InvalidCredentialsError()

        if not user.is_active or user.is_deleted:
            raise AccountInactiveError()

        if needs_rehash(user.password_hash):
            # Cost parameters changed; upgrade in place without invalidating sessions
            user.password_hash = await hash_password(password)

        await self.store.record_successful_login(user)
        await self.throttle.reset(ip_address)
        tokens = await self._start_session(user, device)
        await self._commit()

        self.audit.log(AuditAction.LOGIN, user.id, ip_address=ip_address)
        return AuthResult(user=user, tokens=tokens)

    # --- refresh and logout -----------------------------------------------

    async def refresh(
        self, refresh_token: str, device: DeviceInfo | None = None
    ) -> RefreshResult:
        """Exchange a valid refresh token for a new access token.

        With rotation enabled the presented refresh token is superseded and a
        new one is issued in the same session. Presenting a superseded token
        again revokes the whole session.
        """
        ip_address = device.ip_address if device else None
        try:
            claims = self.codec.decode_refresh(refresh_token)
        except InvalidTokenError as e:
            raise InvalidTokenError() from e

        record = await self.ledger.find_valid(refresh_token, TokenType.REFRESH)
        if record is None:
            await self._detect_reuse(refresh_token, ip_address)
            raise InvalidTokenError()

        if record.user_id != claims.user_id:
            raise InvalidTokenError()

        user = await self.store.get_by_id(record.user_id)
        if (
            user is None
            or not user.is_active
            or user.is_deleted
            or user.is_currently_banned()
        ):
            raise AccountInactiveError()

        await self.ledger.record_use(record)
        await self.store.touch_activity(user)
        session_id = record.session_id or claims.session_id or _new_session_id()
        access_token = self.codec.issue_access(
            user.id, user.role, session_id=session_id, token_version=user.token_version
        )

        new_refresh: str | None = None
        if self.rotate_refresh_tokens:
            await self.ledger.revoke(record, RevocationReason.SUPERSEDED)
            new_refresh = self.codec.issue_refresh(user.id, user.role, session_id)
            await self.ledger.issue_refresh(
                user.id, session_id, device, token=new_refresh, ttl=self.codec.refresh_ttl
            )
        await self._commit()

        self.audit.log(
            AuditAction.TOKEN_REFRESHED,
            user.id,
            ip_address=ip_address,
            details={"session_id": session_id, "rotated": new_refresh is not None},
        )
        return RefreshResult(
            user=user,
            access_token=access_token,
            session_id=session_id,
            expires_in=int(self.codec.access_ttl.total_seconds()),
            refresh_token=new_refresh,
        )

    async def _detect_reuse(self, refresh_token: str, ip_address: str | None) -> None:
        prior = await self.ledger.find_any(refresh_token, TokenType.REFRESH)
        if (
            prior is None
            or prior.revocation_reason != RevocationReason.SUPERSEDED.value
            or not prior.session_id
        ):
            return
        revoked = await self.ledger.revoke_session(
            prior.user_id, prior.session_id, RevocationReason.SECURITY_BREACH
        )
        await self._commit()
        self.audit.log(
            AuditAction.REFRESH_REUSE_DETECTED,
            prior.user_id,
            ip_address=ip_address,
            reason=RevocationReason.SECURITY_BREACH.value,
            details={"session_id": prior.session_id, "revoked": revoked},
        )

    async def logout(
        self,
        user_id: UUID,
        access_token: str,
        session_id: str | None,
        access_expires_at: datetime,
        *,
        ip_address: str | None = None,
    ) -> None:
        """Blacklist the access token and revoke its session's refresh token."""
        await self.ledger.blacklist(
            access_token,
            user_id,
            RevocationReason.LOGOUT,
            access_expires_at,
            session_id=session_id,
        )
        if session_id:
            await self.ledger.revoke_session(user_id, session_id, RevocationReason.LOGOUT)
        await self._commit()
        self.audit.log(
            AuditAction.LOGOUT, user_id, ip_address=ip_address, details={"session_id": session_id}
        )

    async def logout_all(
        self,
        user_id: UUID,
        *,
        access_token: str | None = None,
        access_expires_at: datetime | None = None,
        ip_address: str | None = None,
    ) -> int:
        """Revoke every session of the user and every access token issued so far."""
        user = await self._require_user(user_id)
        count = await self.ledger.revoke_all_for_user(user.id, RevocationReason.LOGOUT_ALL)
        await self.store.bump_token_version(user)
        if access_token and access_expires_at:
            await self.ledger.blacklist(
                access_token, user.id, RevocationReason.LOGOUT_ALL, access_expires_at
            )
        await self._commit()
        self.audit.log(
            AuditAction.LOGOUT_ALL, user.id, ip_address=ip_address, details={"revoked": count}
        )
        return count

    # --- passwords --------------------------------------------------------

    async def change_password(
        self,
        user_id: UUID,
        current_password: str,
        new_password: str,
        *,
        ip_address: str | None = None,
    ) -> int:
        """Replace the password and force re-authentication everywhere."""
        user = await self._require_user(user_id)
        if not await verify_password(current_password, user.password_hash):
            self.audit.log(
                AuditAction.ACCESS_DENIED,
                user.id,
                ip_address=ip_address,
                reason="wrong_current_password",
            )
            raise InvalidCredentialsError("Current password is incorrect")
        _check_password_policy(new_password)
        if current_password == new_password:
            raise ValidationError("New password must differ from the current password")

        await self.store.set_password_hash(user, await hash_password(new_password))
        count = await self.ledger.revoke_all_for_user(
            user.id, RevocationReason.PASSWORD_CHANGE, revoked_by=user.id
        )
        await self._commit()
        self.audit.log(
            AuditAction.PASSWORD_CHANGED,
            user.id,
            ip_address=ip_address,
            details={"revoked": count},
        )
        return count

    async def request_password_reset(
        self, email: str, *, ip_address: str | None = None
    ) -> str:
        """Issue a reset token if the account exists. The reply never says which."""
        user = await self.store.get_by_email(email)
        if user is None or not user.is_active or user.is_deleted:
            logger.debug("Password reset requested for unknown or inactive account")
            return PASSWORD_RESET_MESSAGE

        await self.ledger.revoke_all_for_user(
            user.id,
            RevocationReason.SUPERSEDED,
            token_types=[TokenType.RESET_PASSWORD],
        )
        ttl = timedelta(minutes=settings.reset_token_expire_minutes)
        token = await self.ledger.issue_token(
            user.id, TokenType.RESET_PASSWORD, ttl, meta={"ip_address": ip_address}
        )
        await self._commit()

        await self.delivery.deliver(user, TokenType.RESET_PASSWORD, token, utcnow() + ttl)
        self.audit.log(AuditAction.PASSWORD_RESET_REQUESTED, user.id, ip_address=ip_address)
        return PASSWORD_RESET_MESSAGE

    async def reset_password(
        self,
        email: str,
        reset_token: str,
        new_password: str,
        *,
        ip_address: str | None = None,
    ) -> None:
        """Set a new password using a reset token issued to the same account."""
        _check_password_policy(new_password)

        user = await self.store.get_by_email(email)
        record = await self.ledger.find_valid(reset_token, TokenType.RESET_PASSWORD)
        if user is None or record is None or record.user_id != user.id:
            self.audit.log(
                AuditAction.ACCESS_DENIED,
                user.id if user else None,
                ip_address=ip_address,
                reason="invalid_reset_token",
            )
            raise InvalidTokenError()

        await self.store.set_password_hash(user, await hash_password(new_password))
        await self.ledger.revoke(record, RevocationReason.USED)
        count = await self.ledger.revoke_all_for_user(
            user.id, RevocationReason.PASSWORD_RESET, revoked_by=user.id
        )
        await self.store.clear_lockout(user)
        await self._commit()
        self.audit.log(
            AuditAction.PASSWORD_RESET, user.id, ip_address=ip_address, details={"revoked": count}
        )

    # --- email verification -----------------------------------------------

    async def request_email_verification(self, user_id: UUID) -> None:
        user = await self._require_user(user_id)
        if user.is_verified:
            raise ConflictError("Email is already verified")

        await self.ledger.revoke_all_for_user(
            user.id,
            RevocationReason.SUPERSEDED,
            token_types=[TokenType.EMAIL_VERIFICATION],
        )
        ttl = timedelta(hours=settings.verification_token_expire_hours)
        token = await self.ledger.issue_token(user.id, TokenType.EMAIL_VERIFICATION, ttl)
        await self._commit()
        await self.delivery.deliver(user, TokenType.EMAIL_VERIFICATION, token, utcnow() + ttl)

    async def verify_email(self, token: str, *, ip_address: str | None = None) -> User:
        record = await self.ledger.find_valid(token, TokenType.EMAIL_VERIFICATION)
        if record is None:
            raise InvalidTokenError()
        user = await self.store.get_by_id(record.user_id)
        if user is None:
            raise InvalidTokenError()

        await self.store.mark_verified(user)
        await self.ledger.revoke(record, RevocationReason.USED)
        await self._commit()
        self.audit.log(AuditAction.EMAIL_VERIFIED, user.id, ip_address=ip_address)
        return user

    # --- sessions ---------------------------------------------------------

    async def get_user(self, user_id: UUID) -> User:
        return await self._require_user(user_id)

    async def list_sessions(self, user_id: UUID) -> list[AuthToken]:
        return await self.ledger.list_active_sessions(user_id)

    async def revoke_session(
        self, user_id: UUID, session_id: str, *, ip_address: str | None = None
    ) -> int:
        count = await self.ledger.revoke_session(user_id, session_id, RevocationReason.MANUAL)
        if not count:
            raise NotFoundError("Session not found")
        await self._commit()
        self.audit.log(
            AuditAction.SESSION_REVOKED,
            user_id,
            ip_address=ip_address,
            reason=RevocationReason.MANUAL.value,
            details={"session_id": session_id},
        )
        return count

    # --- admin moderation -------------------------------------------------

    async def _moderation_target(self, actor: User, target_id: UUID) -> User:
        if actor.id == target_id:
            raise AuthorizationError("Admins cannot moderate their own account")
        return await self._require_user(target_id)

    async def _lock_down(self, actor: User, target: User) -> int:
        count = await self.ledger.revoke_all_for_user(
            target.id, RevocationReason.ADMIN_ACTION, revoked_by=actor.id
        )
        await self.store.bump_token_version(target)
        return count

    async def ban_user(
        self,
        actor: User,
        target_id: UUID,
        reason: str | None = None,
        expires_at: datetime | None = None,
        *,
        ip_address: str | None = None,
    ) -> User:
        if expires_at is not None and expires_at <= utcnow():
            raise ValidationError("Ban expiry must be in the future")
        target = await self._moderation_target(actor, target_id)
        await self.store.set_ban(target, reason, expires_at)
        count = await self._lock_down(actor, target)
        await self._commit()
        self.audit.log(
            AuditAction.ADMIN_BAN,
            target.id,
            actor_id=actor.id,
            ip_address=ip_address,
            reason=reason,
            details={
                "expires_at": expires_at.isoformat() if expires_at else None,
                "revoked": count,
            },
        )
        return target

    async def unban_user(
        self, actor: User, target_id: UUID, *, ip_address: str | None = None
    ) -> User:
        target = await self._moderation_target(actor, target_id)
        await self.store.clear_ban(target)
        await self._commit()
        self.audit.log(AuditAction.ADMIN_UNBAN, target.id, actor_id=actor.id, ip_address=ip_address)
        return target

    async def unlock_user(
        self, actor: User, target_id: UUID, *, ip_address: str | None = None
    ) -> User:
        target = await self._require_user(target_id)
        await self.store.clear_lockout(target)
        await self._commit()
        self.audit.log(
            AuditAction.ADMIN_UNLOCK, target.id, actor_id=actor.id, ip_address=ip_address
        )
        return target

    async def change_role(
        self,
        actor: User,
        target_id: UUID,
        role: Role,
        *,
        pen_name: str | None = None,
        ip_address: str | None = None,
    ) -> User:
        target = await self._moderation_target(actor, target_id)
        previous = target.role
        await self.store.set_profile(target, convert_profile(target, role, pen_name))
        # Outstanding access tokens carry the old role claim
        await self.store.bump_token_version(target)
        await self._commit()
        self.audit.log(
            AuditAction.ADMIN_ROLE_CHANGE,
            target.id,
            actor_id=actor.id,
            ip_address=ip_address,
            details={"from": previous, "to": role.value},
        )
        return target

    async def deactivate_user(
        self, actor: User, target_id: UUID, *, ip_address: str | None = None
    ) -> User:
        target = await self._moderation_target(actor, target_id)
        await self.store.soft_delete(target)
        count = await self._lock_down(actor, target)
        await self._commit()
        self.audit.log(
            AuditAction.ADMIN_DEACTIVATE,
            target.id,
            actor_id=actor.id,
            ip_address=ip_address,
            details={"revoked": count},
        )
        return target

    async def revoke_user_tokens(
        self, actor: User, target_id: UUID, *, ip_address: str | None = None
    ) -> int:
        target = await self._require_user(target_id)
        count = await self._lock_down(actor, target)
        await self._commit()
        self.audit.log(
            AuditAction.ADMIN_REVOKE_TOKENS,
            target.id,
            actor_id=actor.id,
            ip_address=ip_address,
            reason=RevocationReason.ADMIN_ACTION.value,
            details={"revoked": count},
        )
        return count

    # --- maintenance ------------------------------------------------------

    async def sweep_expired(self) -> int:
        """Delete expired ledger records and elapsed throttle windows."""
        removed = await self.ledger.sweep_expired()
        await self.throttle.purge_stale()
        await self._commit()
        if removed:
            self.audit.log(AuditAction.TOKEN_SWEEP, details={"removed": removed})
        return removed
