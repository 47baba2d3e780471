# VerseNest Models
from versenest.models.auth_token import AuthToken, RevocationReason, TokenType
from versenest.models.base import BaseModel
from versenest.models.login_throttle import LoginThrottle
from versenest.models.user import Role, User

__all__ = [
    "AuthToken",
    "BaseModel",
    "LoginThrottle",
    "RevocationReason",
    "Role",
    "TokenType",
    "User",
]
