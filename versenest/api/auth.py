"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Body, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from versenest.api.cookies import clear_auth_cookies, set_auth_cookies
from versenest.core.database import get_db
from versenest.core.errors import InvalidTokenError
from versenest.core.request_utils import get_client_ip, get_device_info
from versenest.middleware.request_gate import (
    REFRESH_COOKIE,
    AuthContext,
    authenticate,
    authenticate_with_query,
)
from versenest.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
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
)
from versenest.services.session_manager import (
    AuthResult,
    SessionManager,
    TokenDelivery,
    get_token_delivery,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def get_session_manager(
    db: AsyncSession = Depends(get_db),
    delivery: TokenDelivery = Depends(get_token_delivery),
) -> SessionManager:
    """Dependency to get the session manager."""
    return SessionManager(db, delivery=delivery)


def _auth_response(result: AuthResult, response: Response) -> AuthResponse:
    set_auth_cookies(response, result.tokens.access_token, result.tokens.refresh_token)
    return AuthResponse(
        user=UserResponse.model_validate(result.user),
        access_token=result.tokens.access_token,
        token_type=result.tokens.token_type,
        expires_in=result.tokens.expires_in,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
) -> AuthResponse:
    """Create a reader or writer account and sign it in."""
    profile_fields = body.model_dump(
        exclude={"email", "password", "role", "full_name"}, exclude_none=True
    )
    result = await manager.register(
        body.email,
        body.password,
        body.role,
        body.full_name,
        device=get_device_info(request),
        **profile_fields,
    )
    return _auth_response(result, response)


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
) -> AuthResponse:
    """Authenticate with email and password.

    Unknown email and wrong password return the same 401.
    """
    result = await manager.login(body.email, body.password, get_device_info(request))
    return _auth_response(result, response)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    request: Request,
    response: Response,
    body: RefreshRequest | None = Body(None),
    manager: SessionManager = Depends(get_session_manager),
) -> RefreshResponse:
    """Mint a new access token from the refresh cookie (or body)."""
    from_body = body.refresh_token if body else None
    refresh_token = request.cookies.get(REFRESH_COOKIE) or from_body
    if not refresh_token:
        raise InvalidTokenError("Refresh token required")

    result = await manager.refresh(refresh_token, get_device_info(request))
    set_auth_cookies(response, result.access_token, result.refresh_token)
    return RefreshResponse(
        access_token=result.access_token,
        expires_in=result.expires_in,
        refresh_token=result.refresh_token if from_body else None,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    context: AuthContext = Depends(authenticate),
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    """End the current session: blacklist the access token, revoke its refresh token."""
    await manager.logout(
        context.user_id,
        context.token,
        context.session_id,
        context.claims.expires_at,
        ip_address=get_client_ip(request),
    )
    clear_auth_cookies(response)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=RevokedResponse)
async def logout_all(
    request: Request,
    response: Response,
    context: AuthContext = Depends(authenticate),
    manager: SessionManager = Depends(get_session_manager),
) -> RevokedResponse:
    """End every session of the current user."""
    count = await manager.logout_all(
        context.user_id,
        access_token=context.token,
        access_expires_at=context.claims.expires_at,
        ip_address=get_client_ip(request),
    )
    clear_auth_cookies(response)
    return RevokedResponse(message="Logged out from all devices", revoked=count)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    response: Response,
    context: AuthContext = Depends(authenticate),
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    """Change password. All sessions, including this one, must sign in again."""
    await manager.change_password(
        context.user_id,
        body.current_password,
        body.new_password,
        ip_address=get_client_ip(request),
    )
    clear_auth_cookies(response)
    return MessageResponse(message="Password changed successfully. Please log in again.")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    """Request a password reset. The reply is identical whether or not the account exists."""
    message = await manager.request_password_reset(body.email, ip_address=get_client_ip(request))
    return MessageResponse(message=message)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    await manager.reset_password(
        body.email, body.token, body.new_password, ip_address=get_client_ip(request)
    )
    return MessageResponse(message="Password has been reset. Please log in.")


@router.get("/me", response_model=MeResponse)
async def me(context: AuthContext = Depends(authenticate)) -> MeResponse:
    return MeResponse(user=UserResponse.model_validate(context.user))


@router.get("/verify", response_model=VerifyTokenResponse)
async def verify_token(
    context: AuthContext = Depends(authenticate_with_query),
) -> VerifyTokenResponse:
    """Check an access token supplied by header, cookie or ?token=."""
    return VerifyTokenResponse(valid=True, user=UserResponse.model_validate(context.user))


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    context: AuthContext = Depends(authenticate),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionListResponse:
    records = await manager.list_sessions(context.user_id)
    return SessionListResponse(
        sessions=[
            SessionResponse(
                session_id=record.session_id or "",
                user_agent=record.user_agent,
                ip_address=record.ip_address,
                created_at=record.created_at,
                last_used_at=record.last_used_at,
                expires_at=record.expires_at,
                usage_count=record.usage_count,
                current=record.session_id == context.session_id,
            )
            for record in records
        ]
    )


@router.delete("/sessions/{session_id}", response_model=RevokedResponse)
async def revoke_session(
    session_id: str,
    request: Request,
    context: AuthContext = Depends(authenticate),
    manager: SessionManager = Depends(get_session_manager),
) -> RevokedResponse:
    count = await manager.revoke_session(
        context.user_id, session_id, ip_address=get_client_ip(request)
    )
    return RevokedResponse(message="Session revoked", revoked=count)


@router.post("/verify-email/request", response_model=MessageResponse)
async def request_email_verification(
    context: AuthContext = Depends(authenticate),
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    await manager.request_email_verification(context.user_id)
    return MessageResponse(message="Verification email sent")


@router.post("/verify-email", response_model=MeResponse)
async def verify_email(
    body: VerifyEmailRequest,
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> MeResponse:
    user = await manager.verify_email(body.token, ip_address=get_client_ip(request))
    return MeResponse(user=UserResponse.model_validate(user))
