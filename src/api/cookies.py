"""Auth cookie names and attributes."""

from fastapi import Response

from domain.model.token import IssuedTokens
from services.oauth_service import OAUTH_SESSION_TTL_SECONDS
from utils.config import Settings

ACCESS_COOKIE = 'token'
REFRESH_COOKIE = 'refreshToken'
SESSION_COOKIE = 'sid'


def _set(response: Response, name: str, value: str, max_age: int, settings: Settings) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        httponly=True,
        secure=settings.production,
        samesite='lax',
        path='/',
    )


def set_auth_cookies(response: Response, issued: IssuedTokens, settings: Settings) -> None:
    _set(response, ACCESS_COOKIE, issued.access_token, issued.access_max_age, settings)
    _set(response, REFRESH_COOKIE, issued.refresh_token, issued.refresh_max_age, settings)


def set_session_cookie(response: Response, session_id: str, settings: Settings) -> None:
    _set(response, SESSION_COOKIE, session_id, OAUTH_SESSION_TTL_SECONDS, settings)


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE, SESSION_COOKIE):
        response.delete_cookie(name, path='/', secure=settings.production, httponly=True, samesite='lax')
