"""Admin moderation API.

Every route requires the admin role. Ban, deactivate and revoke-tokens
revoke all of the target's tokens with reason admin_action.
"""

from uuid import UUID

from fastapi import APIRouter, Body, Depends, Request

from versenest.api.auth import get_session_manager
from versenest.core.request_utils import get_client_ip
from versenest.middleware.request_gate import AuthContext, require_admin
from versenest.models.user import User
from versenest.schemas.admin import (
    AdminUserEnvelope,
    AdminUserResponse,
    BanRequest,
    RoleChangeRequest,
)
from versenest.schemas.auth import RevokedResponse
from versenest.services.session_manager import SessionManager

router = APIRouter(prefix="/admin/users", tags=["admin"])


def _envelope(user: User) -> AdminUserEnvelope:
    return AdminUserEnvelope(user=AdminUserResponse.model_validate(user))


@router.get("/{user_id}", response_model=AdminUserEnvelope)
async def get_user(
    user_id: UUID,
    admin: AuthContext = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
) -> AdminUserEnvelope:
    return _envelope(await manager.get_user(user_id))


@router.post("/{user_id}/ban", response_model=AdminUserEnvelope)
async def ban_user(
    user_id: UUID,
    request: Request,
    body: BanRequest | None = Body(None),
    admin: AuthContext = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
) -> AdminUserEnvelope:
    """Ban an account (optionally until expiresAt) and end all its sessions."""
    body = body or BanRequest()
    user = await manager.ban_user(
        admin.user,
        user_id,
        body.reason,
        body.expires_at,
        ip_address=get_client_ip(request),
    )
    return _envelope(user)


@router.post("/{user_id}/unban", response_model=AdminUserEnvelope)
async def unban_user(
    user_id: UUID,
    request: Request,
    admin: AuthContext = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
) -> AdminUserEnvelope:
    user = await manager.unban_user(admin.user, user_id, ip_address=get_client_ip(request))
    return _envelope(user)


@router.post("/{user_id}/unlock", response_model=AdminUserEnvelope)
async def unlock_user(
    user_id: UUID,
    request: Request,
    admin: AuthContext = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
) -> AdminUserEnvelope:
    """Clear a failed-login lockout before it elapses."""
    user = await manager.unlock_user(admin.user, user_id, ip_address=get_client_ip(request))
    return _envelope(user)


@router.post("/{user_id}/role", response_model=AdminUserEnvelope)
async def change_role(
    user_id: UUID,
    body: RoleChangeRequest,
    request: Request,
    admin: AuthContext = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
) -> AdminUserEnvelope:
    user = await manager.change_role(
        admin.user,
        user_id,
        body.role,
        pen_name=body.pen_name,
        ip_address=get_client_ip(request),
    )
    return _envelope(user)


@router.post("/{user_id}/deactivate", response_model=AdminUserEnvelope)
async def deactivate_user(
    user_id: UUID,
    request: Request,
    admin: AuthContext = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
) -> AdminUserEnvelope:
    """Soft-delete an account. The row is kept so authored content keeps its owner."""
    user = await manager.deactivate_user(admin.user, user_id, ip_address=get_client_ip(request))
    return _envelope(user)


@router.post("/{user_id}/revoke-tokens", response_model=RevokedResponse)
async def revoke_tokens(
    user_id: UUID,
    request: Request,
    admin: AuthContext = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
) -> RevokedResponse:
    count = await manager.revoke_user_tokens(
        admin.user, user_id, ip_address=get_client_ip(request)
    )
    return RevokedResponse(message="All tokens revoked", revoked=count)
