"""Pydantic schemas for authentication API.

JSON bodies use camelCase (accessToken, fullName, ...) and also accept the
snake_case field names.
"""

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _RegistrationBase(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    full_name: str = Field(..., min_length=1, max_length=100)
    bio: str | None = Field(None, max_length=500)


class ReaderRegistration(_RegistrationBase):
    """Reader sign-up: optional genre and mood preferences."""

    role: Literal["reader"]
    genres: list[str] = Field(default_factory=list)
    mood_preferences: list[str] = Field(default_factory=list, max_length=5)


class WriterRegistration(_RegistrationBase):
    """Writer sign-up: a pen name is required."""

    role: Literal["writer"]
    pen_name: str = Field(..., min_length=2, max_length=50)
    genres: list[str] = Field(default_factory=list)


RegisterRequest = Annotated[
    ReaderRegistration | WriterRegistration, Field(discriminator="role")
]


class LoginRequest(CamelModel):
    """Request for login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(CamelModel):
    """Refresh token in the body, for clients that do not keep cookies."""

    refresh_token: str | None = None


class ChangePasswordRequest(CamelModel):
    """Request for password change."""

    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    email: EmailStr
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1, max_length=128)


class VerifyEmailRequest(CamelModel):
    token: str = Field(..., min_length=1)


class UserResponse(CamelModel):
    """Public view of an account. Secret and lockout fields are never included."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    email: str
    role: str
    full_name: str
    display_name: str
    pen_name: str | None = None
    bio: str | None = None
    genres: list[str] = Field(default_factory=list)
    mood_preferences: list[str] = Field(default_factory=list)
    is_verified: bool
    last_login_at: datetime | None = None
    created_at: datetime


class AuthResponse(CamelModel):
    """Register/login response. The refresh token travels as an http-only cookie."""

    success: bool = True
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiry in seconds")


class RefreshResponse(CamelModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiry in seconds")
    refresh_token: str | None = Field(
        None,
        description="Rotated refresh token, returned only when it was sent in the body",
    )


class MessageResponse(CamelModel):
    """Generic message response."""

    success: bool = True
    message: str


class MeResponse(CamelModel):
    success: bool = True
    user: UserResponse


class VerifyTokenResponse(CamelModel):
    success: bool = True
    valid: bool
    user: UserResponse


class SessionResponse(CamelModel):
    """One active refresh session."""

    session_id: str
    user_agent: str | None = None
    ip_address: str | None = None
    created_at: datetime
    last_used_at: datetime
    expires_at: datetime
    usage_count: int = 0
    current: bool = False


class SessionListResponse(CamelModel):
    success: bool = True
    sessions: list[SessionResponse]


class RevokedResponse(CamelModel):
    success: bool = True
    message: str
    revoked: int
