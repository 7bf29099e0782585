from fastapi import Response

from uni_feedback.config import (
    settings,
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    REFRESH_COOKIE_PATH,
    ACCESS_TOKEN_TTL,
)
from uni_feedback.utils.dates import utcnow


def set_auth_cookies(response: Response, access_token: str, refresh_token: str, expires_at):
    refresh_max_age = max(int((expires_at - utcnow()).total_seconds()), 0)

    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=int(ACCESS_TOKEN_TTL.total_seconds()),
        path="/",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
    )
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=refresh_max_age,
        path=REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
    )


def clear_auth_cookies(response: Response):
    response.delete_cookie(ACCESS_COOKIE, path="/", httponly=True, secure=settings.COOKIE_SECURE, samesite="strict")
    response.delete_cookie(
        REFRESH_COOKIE,
        path=REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
    )
