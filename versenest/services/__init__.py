# VerseNest Services
from versenest.services.audit import AuditAction, AuditService, get_audit_service
from versenest.services.credential_store import CredentialStore
from versenest.services.login_throttle import LoginThrottleService
from versenest.services.session_manager import (
    LoggingTokenDelivery,
    SessionManager,
    TokenDelivery,
    get_token_delivery,
)
from versenest.services.token_codec import TokenCodec, get_token_codec
from versenest.services.token_ledger import TokenLedger, hash_token

__all__ = [
    "AuditAction",
    "AuditService",
    "CredentialStore",
    "LoggingTokenDelivery",
    "LoginThrottleService",
    "SessionManager",
    "TokenCodec",
    "TokenDelivery",
    "TokenLedger",
    "get_audit_service",
    "get_token_codec",
    "get_token_delivery",
    "hash_token",
]
