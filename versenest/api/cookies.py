"""Auth cookie helpers.

Both cookies are http-only and SameSite=strict; Secure is set in production.
The refresh cookie is scoped to /auth so it only travels to the auth routes.
"""

from starlette.responses import Response

from versenest.core import settings
from versenest.middleware.request_gate import ACCESS_COOKIE, REFRESH_COOKIE

ACCESS_COOKIE_PATH = "/"
REFRESH_COOKIE_PATH = "/auth"


def set_auth_cookies(
    response: Response, access_token: str, refresh_token: str | None = None
) -> None:
    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=settings.access_token_expire_minutes * 60,
        path=ACCESS_COOKIE_PATH,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
    if refresh_token:
        response.set_cookie(
            REFRESH_COOKIE,
            refresh_token,
            max_age=settings.refresh_token_expire_days * 24 * 3600,
            path=REFRESH_COOKIE_PATH,
            httponly=True,
            secure=settings.is_production,
            samesite="strict",
        )


def clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(
        ACCESS_COOKIE,
        path=ACCESS_COOKIE_PATH,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
    response.delete_cookie(
        REFRESH_COOKIE,
        path=REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
