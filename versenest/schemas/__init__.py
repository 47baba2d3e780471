# VerseNest Schemas
from versenest.schemas.admin import AdminUserEnvelope, AdminUserResponse, BanRequest, RoleChangeRequest
from versenest.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    ReaderRegistration,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    ResetPasswordRequest,
    RevokedResponse,
    SessionListResponse,
    SessionResponse,
    UserResponse,
    VerifyEmailRequest,
    VerifyTokenResponse,
    WriterRegistration,
)

__all__ = [
    "AdminUserEnvelope",
    "AdminUserResponse",
    "AuthResponse",
    "BanRequest",
    "ChangePasswordRequest",
    "ForgotPasswordRequest",
    "LoginRequest",
    "MeResponse",
    "MessageResponse",
    "ReaderRegistration",
    "RefreshRequest",
    "RefreshResponse",
    "RegisterRequest",
    "ResetPasswordRequest",
    "RevokedResponse",
    "RoleChangeRequest",
    "SessionListResponse",
    "SessionResponse",
    "UserResponse",
    "VerifyEmailRequest",
    "VerifyTokenResponse",
    "WriterRegistration",
]
