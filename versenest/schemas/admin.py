"""Pydantic schemas for the admin moderation API."""

from datetime import UTC, datetime

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from versenest.models.user import Role
from versenest.schemas.auth import CamelModel, UserResponse


class BanRequest(CamelModel):
    """Ban an account, permanently or until expires_at."""

    reason: str | None = Field(None, max_length=500)
    expires_at: datetime | None = Field(None, description="Omit for a permanent ban")

    @field_validator("expires_at")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v


class RoleChangeRequest(CamelModel):
    role: Role
    pen_name: str | None = Field(
        None, min_length=2, max_length=50, description="Required when promoting to writer"
    )


class AdminUserResponse(UserResponse):
    """Account view for moderators, including security state."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    is_active: bool
    deleted_at: datetime | None = None
    is_banned: bool
    ban_reason: str | None = None
    ban_expires_at: datetime | None = None
    failed_login_attempts: int
    lock_until: datetime | None = None
    last_active_at: datetime | None = None
    password_changed_at: datetime | None = None


class AdminUserEnvelope(CamelModel):
    success: bool = True
    user: AdminUserResponse
