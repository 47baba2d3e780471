"""Security Audit Logging Service.

Logs security-relevant events for compliance and monitoring:
- Authentication outcomes (login, lockout, refresh reuse)
- Credential state changes (password change/reset, revocation)
- Admin moderation actions
"""

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

logger = logging.getLogger("versenest.audit")


class AuditAction(str, Enum):
    """Security audit action types."""

    # Authentication events
    REGISTER = "auth.register"
    LOGIN = "auth.login"
    LOGIN_FAILED = "auth.login_failed"
    LOCKOUT = "auth.lockout"
    LOGOUT = "auth.logout"
    LOGOUT_ALL = "auth.logout_all"
    TOKEN_REFRESHED = "auth.token_refreshed"
    REFRESH_REUSE_DETECTED = "auth.refresh_reuse_detected"
    PASSWORD_CHANGED = "auth.password_changed"
    PASSWORD_RESET_REQUESTED = "auth.password_reset_requested"
    PASSWORD_RESET = "auth.password_reset"
    EMAIL_VERIFIED = "auth.email_verified"
    SESSION_REVOKED = "auth.session_revoked"
    SESSION_LIMIT_ENFORCED = "auth.session_limit_enforced"
    ACCESS_DENIED = "auth.access_denied"

    # Admin events
    ADMIN_BAN = "admin.ban"
    ADMIN_UNBAN = "admin.unban"
    ADMIN_UNLOCK = "admin.unlock"
    ADMIN_ROLE_CHANGE = "admin.role_change"
    ADMIN_DEACTIVATE = "admin.deactivate"
    ADMIN_REVOKE_TOKENS = "admin.revoke_tokens"

    # System events
    TOKEN_SWEEP = "system.token_sweep"


_WARNING_ACTIONS = {
    AuditAction.LOGIN_FAILED,
    AuditAction.LOCKOUT,
    AuditAction.REFRESH_REUSE_DETECTED,
    AuditAction.ACCESS_DENIED,
}

_SENSITIVE_KEYS = {
    "password",
    "secret",
    "token",
    "api_key",
    "hash",
}


class AuditService:
    """Service for logging security audit events.

    All audit entries include:
    - Timestamp
    - Action type
    - User ID (subject of the event) and actor ID when different
    - Client IP address
    - Reason and sanitized details
    """

    def __init__(self, audit_logger: logging.Logger | None = None):
        self._logger = audit_logger or logger

    def log(
        self,
        action: AuditAction,
        user_id: UUID | None = None,
        *,
        ip_address: str | None = None,
        reason: str | None = None,
        actor_id: UUID | None = None,
        details: dict[str, Any] | None = None,
        level: int | None = None,
    ) -> dict[str, Any]:
        """Log a security audit event and return the structured entry."""
        entry: dict[str, Any] = {
            "action": action.value,
            "user_id": str(user_id) if user_id else None,
            "ip_address": ip_address,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        if reason:
            entry["reason"] = reason
        if actor_id and actor_id != user_id:
            entry["actor_id"] = str(actor_id)
        if details:
            entry["details"] = self._sanitize_details(details)

        if level is None:
            level = logging.WARNING if action in _WARNING_ACTIONS else logging.INFO

        message = f"{action.value}: user={entry['user_id']} ip={ip_address}"
        if reason:
            message += f" reason={reason}"
        self._logger.log(level, message, extra={"event": entry})
        return entry

    def _sanitize_details(self, details: dict[str, Any]) -> dict[str, Any]:
        """Remove sensitive data from audit details.

        Redacts passwords, tokens, secrets and hashes.
        """
        sanitized: dict[str, Any] = {}
        for key, value in details.items():
            key_lower = key.lower()
            if any(s in key_lower for s in _SENSITIVE_KEYS):
                # Mark as redacted but indicate if value was set/unset
                if value is not None:
                    sanitized[key] = "[REDACTED - set]"
                else:
                    sanitized[key] = "[REDACTED - unset]"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_details(value)
            else:
                sanitized[key] = value

        return sanitized


# Global audit service instance
_audit_service: AuditService | None = None


def get_audit_service() -> AuditService:
    """Get the global audit service instance."""
    global _audit_service
    if _audit_service is None:
        _audit_service = AuditService()
    return _audit_service
