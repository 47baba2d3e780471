"""Token Codec - stateless signing and verification of bearer JWTs.

Access and refresh tokens are signed with different secrets so that a leak
of one family's key cannot be used to mint the other. Nothing here touches
storage; revocation is the Token Ledger's business.
"""

import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import jwt
from jwt.exceptions import PyJWTError

from versenest.core import settings
from versenest.core.errors import TokenExpiredError, TokenMalformedError

ACCESS = "access"
REFRESH = "refresh"

_REQUIRED_CLAIMS = ["sub", "exp", "iat", "type", "role"]


@dataclass(frozen=True)
class TokenClaims:
    """Decoded, verified token payload."""

    user_id: UUID
    role: str
    token_type: str
    issued_at: datetime
    expires_at: datetime
    session_id: str | None = None
    token_version: int | None = None
    jti: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def remaining(self) -> timedelta:
        return max(self.expires_at - datetime.now(UTC), timedelta(0))


class TokenCodec:
    """Issue and verify signed bearer tokens."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        *,
        algorithm: str = "HS256",
        issuer: str | None = None,
        audience: str | None = None,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls) -> "TokenCodec":
        return cls(
            settings.effective_access_secret_key,
            settings.effective_refresh_secret_key,
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        )

    def _secret_for(self, token_type: str) -> str:
        if token_type == ACCESS:
            return self.access_secret
        if token_type == REFRESH:
            return self.refresh_secret
        raise ValueError(f"Unknown token type: {token_type}")

    def issue(
        self,
        claims: dict[str, Any],
        secret_key: str,
        ttl: timedelta,
        *,
        issued_at: datetime | None = None,
    ) -> str:
        """Sign claims with iat/exp (and a unique jti) embedded."""
        now = issued_at or datetime.now(UTC)
        payload = dict(claims)
        payload["iat"] = now
        payload["exp"] = now + ttl
        payload.setdefault("jti", secrets.token_hex(16))
        if self.issuer:
            payload["iss"] = self.issuer
        if self.audience:
            payload["aud"] = self.audience
        token = jwt.encode(payload, secret_key, algorithm=self.algorithm)
        # PyJWT 2.x returns str; older type stubs may declare bytes
        return str(token)

    def verify(self, token: str, secret_key: str) -> dict[str, Any]:
        """Return the raw payload, or raise TokenExpiredError / TokenMalformedError."""
        try:
            return jwt.decode(
                token,
                secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except PyJWTError as e:
            raise TokenMalformedError() from e

    def issue_access(
        self,
        user_id: UUID,
        role: str,
        *,
        session_id: str | None = None,
        token_version: int | None = None,
        issued_at: datetime | None = None,
    ) -> str:
        claims: dict[str, Any] = {"sub": str(user_id), "role": role, "type": ACCESS}
        if session_id:
            claims["sid"] = session_id
        if token_version is not None:
            claims["ver"] = token_version
        return self.issue(claims, self.access_secret, self.access_ttl, issued_at=issued_at)

    def issue_refresh(
        self,
        user_id: UUID,
        role: str,
        session_id: str,
        *,
        issued_at: datetime | None = None,
    ) -> str:
        claims = {"sub": str(user_id), "role": role, "type": REFRESH, "sid": session_id}
        return self.issue(claims, self.refresh_secret, self.refresh_ttl, issued_at=issued_at)

    def decode(self, token: str, expected_type: str) -> TokenClaims:
        """Verify a token of the given family and return typed claims."""
        payload = self.verify(token, self._secret_for(expected_type))
        if payload.get("type") != expected_type:
            raise TokenMalformedError("Unexpected token type")
        try:
            user_id = UUID(str(payload["sub"]))
        except ValueError as e:
            raise TokenMalformedError() from e

        version = payload.get("ver")
        if version is not None:
            try:
                version = int(version)
            except (TypeError, ValueError) as e:
                raise TokenMalformedError() from e
        known = {"sub", "role", "type", "iat", "exp", "sid", "ver", "jti", "iss", "aud"}
        return TokenClaims(
            user_id=user_id,
            role=str(payload["role"]),
            token_type=expected_type,
            issued_at=datetime.fromtimestamp(payload["iat"], UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], UTC),
            session_id=payload.get("sid"),
            token_version=version,
            jti=payload.get("jti"),
            extra={k: v for k, v in payload.items() if k not in known},
        )

    def decode_access(self, token: str) -> TokenClaims:
        return self.decode(token, ACCESS)

    def decode_refresh(self, token: str) -> TokenClaims:
        return self.decode(token, REFRESH)


_codec: TokenCodec | None = None


def get_token_codec() -> TokenCodec:
    """Process-wide codec built from settings."""
    global _codec
    if _codec is None:
        _codec = TokenCodec.from_settings()
    return _codec
