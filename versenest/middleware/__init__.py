"""Middleware module for VerseNest auth."""

from versenest.middleware.request_gate import (
    AuthContext,
    GateOutcome,
    RequestGate,
    authenticate,
    optional_auth,
    require_admin,
    require_ownership,
    require_roles,
)
from versenest.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "AuthContext",
    "GateOutcome",
    "RequestGate",
    "SecurityHeadersMiddleware",
    "authenticate",
    "optional_auth",
    "require_admin",
    "require_ownership",
    "require_roles",
]
