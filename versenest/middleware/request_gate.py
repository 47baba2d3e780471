"""Request Gate - per-request authentication and authorization.

The gate pipeline produces a GateOutcome instead of raising, so the same
evaluation serves both the mandatory dependency (which raises the error)
and optional_auth (which drops it). Storage faults still propagate.

Extraction order:
1. Authorization: Bearer <token>
2. accessToken http-only cookie
3. ?token= query parameter, only on routes that opt in
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from versenest.core.database import get_db
from versenest.core.errors import (
    AccountBannedError,
    AccountInactiveError,
    AccountLockedError,
    AuthenticationError,
    AuthenticationRequiredError,
    AuthorizationError,
    IdentityNotFoundError,
    InvalidTokenError,
    NotFoundError,
    TokenRevokedError,
)
from versenest.core.request_utils import get_client_ip
from versenest.models.base import utcnow
from versenest.models.user import Role, User
from versenest.services.audit import AuditAction, get_audit_service
from versenest.services.credential_store import CredentialStore
from versenest.services.token_codec import TokenClaims, TokenCodec, get_token_codec
from versenest.services.token_ledger import TokenLedger

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"
QUERY_PARAM = "token"


@dataclass(frozen=True)
class AuthContext:
    """Authenticated identity attached to a request."""

    user: User
    token: str
    claims: TokenClaims

    @property
    def user_id(self) -> UUID:
        return self.user.id

    @property
    def role(self) -> Role:
        return Role(self.user.role)

    @property
    def session_id(self) -> str | None:
        return self.claims.session_id


@dataclass(frozen=True)
class GateOutcome:
    context: AuthContext | None = None
    error: AuthenticationError | None = None

    @property
    def ok(self) -> bool:
        return self.context is not None


def extract_token(request: Request, *, allow_query: bool = False) -> str | None:
    """Pull the bearer credential from header, cookie, then (optionally) query."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()  # Remove "Bearer " prefix
        if token:
            return token

    cookie = request.cookies.get(ACCESS_COOKIE)
    if cookie:
        return cookie

    if allow_query:
        return request.query_params.get(QUERY_PARAM) or None
    return None


class RequestGate:
    """Evaluates a presented access token against codec, ledger and store."""

    def __init__(self, session: AsyncSession, codec: TokenCodec | None = None):
        self.ledger = TokenLedger(session)
        self.store = CredentialStore(session)
        self.codec = codec or get_token_codec()

    async def evaluate(self, token: str | None) -> GateOutcome:
        if not token:
            return GateOutcome(error=AuthenticationRequiredError())

        if await self.ledger.is_blacklisted(token):
            return GateOutcome(error=TokenRevokedError())

        try:
            claims = self.codec.decode_access(token)
        except InvalidTokenError as e:
            return GateOutcome(error=e)

        user = await self.store.get_by_id(claims.user_id)
        if user is None:
            return GateOutcome(error=IdentityNotFoundError())
        if not user.is_active or user.is_deleted:
            return GateOutcome(error=AccountInactiveError())

        now = utcnow()
        if user.is_currently_banned(now):
            return GateOutcome(error=AccountBannedError())
        if user.is_locked(now):
            return GateOutcome(error=AccountLockedError())

        # Password change, logout-all and admin lockdown bump the version
        if claims.token_version is not None and claims.token_version != user.token_version:
            return GateOutcome(error=TokenRevokedError())

        return GateOutcome(context=AuthContext(user=user, token=token, claims=claims))


async def _run_gate(request: Request, db: AsyncSession, *, allow_query: bool) -> GateOutcome:
    outcome = await RequestGate(db).evaluate(extract_token(request, allow_query=allow_query))
    if outcome.context is not None:
        request.state.auth = outcome.context
    return outcome


async def authenticate(request: Request, db: AsyncSession = Depends(get_db)) -> AuthContext:
    """Dependency: require a valid access token."""
    outcome = await _run_gate(request, db, allow_query=False)
    if outcome.error is not None:
        logger.debug(
            f"Authentication failed for {request.method} {request.url.path}: "
            f"{outcome.error.error_code}"
        )
        raise outcome.error
    return outcome.context


async def authenticate_with_query(
    request: Request, db: AsyncSession = Depends(get_db)
) -> AuthContext:
    """Like authenticate, but also accepts ?token= (verification-style GETs only)."""
    outcome = await _run_gate(request, db, allow_query=True)
    if outcome.error is not None:
        raise outcome.error
    return outcome.context


async def optional_auth(
    request: Request, db: AsyncSession = Depends(get_db)
) -> AuthContext | None:
    """Dependency: identify the caller if possible, otherwise continue anonymously."""
    outcome = await _run_gate(request, db, allow_query=False)
    return outcome.context


def require_roles(*roles: Role) -> Callable[..., Awaitable[AuthContext]]:
    """Dependency factory: authenticated and holding one of the given roles."""
    allowed = set(roles)

    async def dependency(
        request: Request, context: AuthContext = Depends(authenticate)
    ) -> AuthContext:
        if context.role not in allowed:
            get_audit_service().log(
                AuditAction.ACCESS_DENIED,
                context.user_id,
                ip_address=get_client_ip(request),
                reason="role",
                details={"path": request.url.path, "role": context.role.value},
            )
            raise AuthorizationError()
        return context

    return dependency


def resource_owner(resource: Any, owner_field: str) -> Any:
    if isinstance(resource, Mapping):
        return resource.get(owner_field)
    return getattr(resource, owner_field, None)


def check_ownership(context: AuthContext, resource: Any, owner_field: str = "user_id") -> None:
    """Raise unless the caller owns the resource. Admins bypass ownership."""
    if resource is None:
        raise NotFoundError()
    if context.role is Role.ADMIN:
        return
    owner = resource_owner(resource, owner_field)
    if owner is None or str(owner) != str(context.user_id):
        raise AuthorizationError("You do not have permission to access this resource")


def require_ownership(
    load_resource: Callable[[Request, AsyncSession], Awaitable[Any]],
    owner_field: str = "user_id",
) -> Callable[..., Awaitable[Any]]:
    """Dependency factory: load a resource and require the caller to own it.

    load_resource receives the request and database session and returns the
    resource (ORM object or mapping) or None. The dependency returns the
    resource so the route does not load it twice.
    """

    async def dependency(
        request: Request,
        context: AuthContext = Depends(authenticate),
        db: AsyncSession = Depends(get_db),
    ) -> Any:
        resource = await load_resource(request, db)
        check_ownership(context, resource, owner_field)
        return resource

    return dependency


require_admin = require_roles(Role.ADMIN)
