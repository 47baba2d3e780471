"""Tests for credential extraction and the authentication pipeline."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from starlette.requests import Request

from versenest.core.errors import (
    AccountBannedError,
    AccountInactiveError,
    AccountLockedError,
    AuthenticationRequiredError,
    AuthorizationError,
    IdentityNotFoundError,
    NotFoundError,
    TokenExpiredError,
    TokenMalformedError,
    TokenRevokedError,
)
from versenest.middleware.request_gate import (
    AuthContext,
    RequestGate,
    authenticate,
    check_ownership,
    extract_token,
    optional_auth,
    require_ownership,
    require_roles,
)
from versenest.models import RevocationReason, Role
from versenest.models.base import utcnow
from versenest.services.session_manager import SessionManager
from versenest.services.token_codec import get_token_codec

from tests.conftest import TEST_PASSWORD, bearer


def make_request(
    headers: dict[str, str] | None = None,
    cookies: dict[str, str] | None = None,
    query: str = "",
) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if cookies:
        cookie_header = "; ".join(f"{k}={v}" for k, v in cookies.items())
        raw_headers.append((b"cookie", cookie_header.encode()))
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": raw_headers,
        "query_string": query.encode(),
    }
    return Request(scope)


def test_header_wins_over_cookie_and_query():
    request = make_request(
        headers={"Authorization": "Bearer from-header"},
        cookies={"accessToken": "from-cookie"},
        query="token=from-query",
    )
    assert extract_token(request, allow_query=True) == "from-header"


def test_cookie_used_without_header():
    request = make_request(cookies={"accessToken": "from-cookie"}, query="token=from-query")
    assert extract_token(request, allow_query=True) == "from-cookie"


def test_query_only_when_allowed():
    request = make_request(query="token=from-query")
    assert extract_token(request) is None
    assert extract_token(request, allow_query=True) == "from-query"


def test_non_bearer_header_ignored():
    request = make_request(headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert extract_token(request) is None


def test_empty_bearer_falls_through_to_cookie():
    request = make_request(
        headers={"Authorization": "Bearer "}, cookies={"accessToken": "from-cookie"}
    )
    assert extract_token(request) == "from-cookie"


@pytest.fixture
def gate(db_session) -> RequestGate:
    return RequestGate(db_session)


async def _login(db_session, user_factory, **user_fields):
    user = await user_factory(email="reader@example.com", **user_fields)
    result = await SessionManager(db_session).login("reader@example.com", TEST_PASSWORD)
    return user, result.tokens.access_token


@pytest.mark.asyncio
async def test_valid_token_passes(gate, db_session, user_factory):
    user, token = await _login(db_session, user_factory)

    outcome = await gate.evaluate(token)

    assert outcome.ok
    assert outcome.context.user_id == user.id
    assert outcome.context.role is Role.READER
    assert outcome.context.session_id


@pytest.mark.asyncio
async def test_missing_token(gate):
    outcome = await gate.evaluate(None)
    assert not outcome.ok
    assert isinstance(outcome.error, AuthenticationRequiredError)


@pytest.mark.asyncio
async def test_malformed_token(gate):
    outcome = await gate.evaluate("definitely-not-a-jwt")
    assert isinstance(outcome.error, TokenMalformedError)


@pytest.mark.asyncio
async def test_expired_token(gate, user_factory):
    user = await user_factory()
    token = get_token_codec().issue_access(
        user.id,
        user.role,
        token_version=user.token_version,
        issued_at=datetime.now(UTC) - timedelta(hours=1),
    )
    outcome = await gate.evaluate(token)
    assert isinstance(outcome.error, TokenExpiredError)


@pytest.mark.asyncio
async def test_unknown_user(gate):
    token = get_token_codec().issue_access(uuid4(), "reader", token_version=1)
    outcome = await gate.evaluate(token)
    assert isinstance(outcome.error, IdentityNotFoundError)


@pytest.mark.asyncio
async def test_blacklisted_token(gate, db_session, user_factory):
    user, token = await _login(db_session, user_factory)
    await gate.ledger.blacklist(
        token, user.id, RevocationReason.LOGOUT, utcnow() + timedelta(minutes=15)
    )
    outcome = await gate.evaluate(token)
    assert isinstance(outcome.error, TokenRevokedError)


@pytest.mark.asyncio
async def test_version_mismatch_revokes(gate, db_session, user_factory):
    """Bumping token_version invalidates every access token already issued."""
    user, token = await _login(db_session, user_factory)
    user.token_version += 1
    await db_session.flush()

    outcome = await gate.evaluate(token)
    assert isinstance(outcome.error, TokenRevokedError)


@pytest.mark.asyncio
async def test_inactive_user(gate, db_session, user_factory):
    user, token = await _login(db_session, user_factory)
    user.is_active = False

    outcome = await gate.evaluate(token)
    assert isinstance(outcome.error, AccountInactiveError)


@pytest.mark.asyncio
async def test_banned_user(gate, db_session, user_factory):
    user, token = await _login(db_session, user_factory)
    user.is_banned = True
    user.ban_expires_at = utcnow() + timedelta(days=1)

    outcome = await gate.evaluate(token)
    assert isinstance(outcome.error, AccountBannedError)


@pytest.mark.asyncio
async def test_locked_user(gate, db_session, user_factory):
    user, token = await _login(db_session, user_factory)
    user.lock_until = utcnow() + timedelta(minutes=5)

    outcome = await gate.evaluate(token)
    assert isinstance(outcome.error, AccountLockedError)


@pytest.mark.asyncio
async def test_ownership(db_session, user_factory):
    owner, token = await _login(db_session, user_factory)
    stranger = await user_factory()
    admin = await user_factory(role=Role.ADMIN)
    claims = get_token_codec().decode_access(token)
    poem = {"id": 1, "user_id": str(owner.id)}

    check_ownership(AuthContext(user=owner, token=token, claims=claims), poem)
    check_ownership(AuthContext(user=admin, token=token, claims=claims), poem)
    with pytest.raises(AuthorizationError):
        check_ownership(AuthContext(user=stranger, token=token, claims=claims), poem)
    with pytest.raises(NotFoundError):
        check_ownership(AuthContext(user=owner, token=token, claims=claims), None)


@pytest.mark.asyncio
async def test_optional_auth_swallows_failures(db_session, user_factory):
    _, token = await _login(db_session, user_factory)

    anonymous = await optional_auth(make_request(), db_session)
    garbage = await optional_auth(make_request(cookies={"accessToken": "garbage"}), db_session)
    identified = await optional_auth(make_request(headers=bearer(token)), db_session)

    assert anonymous is None
    assert garbage is None
    assert identified is not None
    assert identified.token == token


@pytest.mark.asyncio
async def test_authenticate_sets_request_state(db_session, user_factory):
    user, token = await _login(db_session, user_factory)
    request = make_request(headers=bearer(token))

    context = await authenticate(request, db_session)

    assert request.state.auth is context
    assert context.user_id == user.id
    with pytest.raises(AuthenticationRequiredError):
        await authenticate(make_request(), db_session)


@pytest.mark.asyncio
async def test_require_ownership_dependency(db_session, user_factory):
    owner, token = await _login(db_session, user_factory)
    stranger = await user_factory()
    claims = get_token_codec().decode_access(token)
    poems = {"p1": {"id": "p1", "author_id": owner.id}}

    async def load_poem(request, db):
        return poems.get(request.query_params.get("poem"))

    dependency = require_ownership(load_poem, owner_field="author_id")
    owner_context = AuthContext(user=owner, token=token, claims=claims)
    stranger_context = AuthContext(user=stranger, token=token, claims=claims)

    poem = await dependency(make_request(query="poem=p1"), owner_context, db_session)
    assert poem["id"] == "p1"
    with pytest.raises(AuthorizationError):
        await dependency(make_request(query="poem=p1"), stranger_context, db_session)
    with pytest.raises(NotFoundError):
        await dependency(make_request(query="poem=missing"), owner_context, db_session)


@pytest.mark.asyncio
async def test_require_roles_dependency(db_session, user_factory):
    reader, token = await _login(db_session, user_factory)
    claims = get_token_codec().decode_access(token)
    writers_only = require_roles(Role.WRITER, Role.ADMIN)

    with pytest.raises(AuthorizationError):
        await writers_only(make_request(), AuthContext(user=reader, token=token, claims=claims))
