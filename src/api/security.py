"""Request guard: resolve the caller from the access token."""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from api.cookies import ACCESS_COOKIE
from api.dependencies import get_token_service, get_user_repo
from domain.model.errors import (
    TokenExpiredError,
    TokenMalformedError,
    TokenVerificationError,
    UnauthorizedError,
)
from domain.model.user import User
from port.user_repository import UserRepository
from services.token_service import TokenService

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """The ``token`` cookie wins over an ``Authorization: Bearer`` header."""
    cookie = request.cookies.get(ACCESS_COOKIE)
    if cookie:
        return cookie
    if credentials:
        return credentials.credentials
    return None


def authenticate_request(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    repo: UserRepository,
    tokens: TokenService,
) -> User:
    token = _extract_token(request, credentials)
    if not token:
        raise UnauthorizedError("Access denied. No token provided.", "TOKEN_MISSING")

    try:
        payload = tokens.verify_access(token)
    except TokenExpiredError:
        raise UnauthorizedError("Token expired. Please log in again.", "TOKEN_EXPIRED")
    except TokenMalformedError:
        raise UnauthorizedError("Invalid token.", "INVALID_TOKEN")
    except TokenVerificationError:
        raise UnauthorizedError("Token verification failed.", "TOKEN_VERIFICATION_FAILED")

    # live lookup: a deleted account loses access immediately
    user = repo.get_by_id(payload.user_id)
    if not user:
        logger.warning("Valid token for unknown user", extra={"userId": payload.user_id})
        raise UnauthorizedError("User not found.", "USER_NOT_FOUND")
    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    repo: UserRepository = Depends(get_user_repo),
    tokens: TokenService = Depends(get_token_service),
) -> User:
    """Get current authenticated user (required). Raises 401 if not authenticated."""
    return authenticate_request(request, credentials, repo, tokens)


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    repo: UserRepository = Depends(get_user_repo),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[User]:
    """Get current authenticated user (optional). Returns None if not authenticated."""
    try:
        return authenticate_request(request, credentials, repo, tokens)
    except UnauthorizedError:
        return None
