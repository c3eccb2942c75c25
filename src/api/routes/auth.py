"""Authentication routes: credentials, OAuth, password reset, token refresh."""

import asyncio
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse

from api.cookies import (
    REFRESH_COOKIE,
    SESSION_COOKIE,
    clear_auth_cookies,
    set_auth_cookies,
    set_session_cookie,
)
from api.dependencies import (
    client_ip,
    get_mailer,
    get_oauth_coordinator,
    get_session_store,
    get_settings,
    get_token_service,
    get_user_repo,
    rate_limit,
)
from api.models import (
    ApiResponse,
    CamelModel,
    ForgotPasswordRequest,
    LoginRequest,
    OAuthStatusData,
    ResetPasswordRequest,
    ResetTokenData,
    SignupRequest,
    UserData,
    UserResponse,
)
from api.security import get_current_user, get_optional_user
from domain.model.errors import (
    CSRFViolationError,
    DomainError,
    DuplicateError,
    InvariantViolationError,
    OAuthExchangeError,
    OAuthStateMissingError,
    ProviderNotConfiguredError,
    UnknownProviderError,
)
from domain.model.user import User
from port.mailer import MailerPort
from port.session_store import SessionStorePort
from port.user_repository import UserRepository
from services import auth_service, password_reset_service
from services.oauth_service import OAuthCoordinator
from services.rate_limit_service import FORGOT_PASSWORD, LOGIN, OAUTH
from services.token_service import TokenService
from utils.config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _envelope(message: str, data: Optional[CamelModel] = None) -> ApiResponse:
    return ApiResponse(
        message=message,
        data=data.model_dump(by_alias=True, mode='json') if data is not None else None,
    )


def _user_data(user: User) -> UserData:
    return UserData(user=UserResponse.from_domain(user))


# ── credential login ─────────────────────────────────────


@router.post("/signup", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    body: SignupRequest,
    request: Request,
    response: Response,
    repo: UserRepository = Depends(get_user_repo),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings),
):
    """Register a local account and log it in."""
    user = auth_service.register(
        repo,
        body.first_name,
        body.last_name,
        body.email,
        body.password,
        body.confirm_password,
        settings.bcrypt_rounds,
    )
    issued = auth_service.issue_session(repo, tokens, user, client_ip(request, settings))
    set_auth_cookies(response, issued, settings)
    return _envelope("User registered successfully", _user_data(user))


@router.post("/login", response_model=ApiResponse, dependencies=[Depends(rate_limit(LOGIN))])
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    repo: UserRepository = Depends(get_user_repo),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings),
):
    """Credential login. Wrong password and unknown email are indistinguishable."""
    user = auth_service.authenticate(repo, body.email, body.password)
    ip = client_ip(request, settings)
    issued = auth_service.issue_session(repo, tokens, user, ip)
    set_auth_cookies(response, issued, settings)
    logger.info("User logged in", extra={"userId": user.id, "ip": ip})
    return _envelope("Login successful", _user_data(user))


def _logout(
    request: Request,
    response: Response,
    user: User,
    repo: UserRepository,
    sessions: SessionStorePort,
    settings: Settings,
    clear_provider_tokens: bool,
) -> None:
    auth_service.logout(repo, user, clear_provider_tokens)
    session_id = request.cookies.get(SESSION_COOKIE)
    if session_id:
        sessions.destroy(session_id)
    clear_auth_cookies(response, settings)


@router.post("/logout", response_model=ApiResponse)
async def logout(
    request: Request,
    response: Response,
    user: User = Depends(get_current_user),
    repo: UserRepository = Depends(get_user_repo),
    sessions: SessionStorePort = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
):
    _logout(request, response, user, repo, sessions, settings, clear_provider_tokens=False)
    return _envelope("Logged out successfully")


@router.post("/logout/oauth", response_model=ApiResponse)
async def logout_oauth(
    request: Request,
    response: Response,
    user: User = Depends(get_current_user),
    repo: UserRepository = Depends(get_user_repo),
    sessions: SessionStorePort = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
):
    """Logout that also forgets the stored provider tokens."""
    _logout(request, response, user, repo, sessions, settings, clear_provider_tokens=True)
    return _envelope("Logged out successfully")


@router.post("/refresh-token", response_model=ApiResponse)
async def refresh_token(
    request: Request,
    response: Response,
    repo: UserRepository = Depends(get_user_repo),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings),
):
    """Rotate the access/refresh pair using the refresh-token cookie."""
    user, issued = auth_service.refresh_session(repo, tokens, request.cookies.get(REFRESH_COOKIE))
    set_auth_cookies(response, issued, settings)
    return _envelope("Token refreshed successfully", _user_data(user))


# ── profile ──────────────────────────────────────────────


@router.get("/user-info", response_model=ApiResponse)
async def user_info(user: User = Depends(get_current_user)):
    return _envelope("User info retrieved", _user_data(user))


@router.get("/oauth-status", response_model=ApiResponse)
async def oauth_status(user: User = Depends(get_current_user)):
    return _envelope("OAuth status retrieved", OAuthStatusData.from_domain(user))


@router.post("/unlink/{provider}", response_model=ApiResponse)
async def unlink_provider(
    provider: str,
    user: User = Depends(get_current_user),
    coordinator: OAuthCoordinator = Depends(get_oauth_coordinator),
):
    """Remove a linked provider, keeping at least one login method."""
    updated = coordinator.unlink(user, provider)
    return _envelope(f"{provider.capitalize()} account unlinked successfully", _user_data(updated))


# ── password reset ───────────────────────────────────────


@router.post("/forgot-password", response_model=ApiResponse, dependencies=[Depends(rate_limit(FORGOT_PASSWORD))])
async def forgot_password(
    body: ForgotPasswordRequest,
    repo: UserRepository = Depends(get_user_repo),
    mailer: MailerPort = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
):
    # SMTP delivery blocks, keep it off the event loop
    message = await asyncio.to_thread(
        password_reset_service.request, repo, mailer, body.email, settings.app_base_url,
    )
    return _envelope(message)


@router.get("/reset-password/{token}", response_model=ApiResponse)
async def validate_reset_token(token: str, repo: UserRepository = Depends(get_user_repo)):
    user = password_reset_service.validate(repo, token)
    return _envelope("Reset token is valid", ResetTokenData(expires_at=user.reset_password_expiry))


@router.post("/reset-password/{token}", response_model=ApiResponse)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    response: Response,
    repo: UserRepository = Depends(get_user_repo),
    settings: Settings = Depends(get_settings),
):
    """Redeem a reset token. Existing sessions end with it."""
    password_reset_service.consume(
        repo, token, body.password, body.confirm_password, settings.bcrypt_rounds,
    )
    clear_auth_cookies(response, settings)
    return _envelope("Password has been reset successfully. Please log in with your new password.")


# ── OAuth ────────────────────────────────────────────────
# Declared last: "/{provider}" would otherwise shadow the static GET paths above.


def _login_redirect(settings: Settings, error_code: str) -> RedirectResponse:
    query = urlencode({'error': error_code})
    return RedirectResponse(f"{settings.client_url.rstrip('/')}/login?{query}", status_code=status.HTTP_302_FOUND)


@router.get("/{provider}", dependencies=[Depends(rate_limit(OAUTH))])
async def oauth_initiate(
    provider: str,
    request: Request,
    coordinator: OAuthCoordinator = Depends(get_oauth_coordinator),
    settings: Settings = Depends(get_settings),
):
    """Start the authorization-code flow and redirect to the provider."""
    redirect = coordinator.initiate(provider, request.cookies.get(SESSION_COOKIE))
    response = RedirectResponse(redirect.url, status_code=status.HTTP_302_FOUND)
    set_session_cookie(response, redirect.session_id, settings)
    return response


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    current_user: Optional[User] = Depends(get_optional_user),
    coordinator: OAuthCoordinator = Depends(get_oauth_coordinator),
    repo: UserRepository = Depends(get_user_repo),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings),
):
    """Finish the flow. Every failure ends in a redirect with an opaque error code."""
    try:
        user = await coordinator.complete(
            provider,
            request.cookies.get(SESSION_COOKIE),
            state,
            code,
            error=error,
            current_user=current_user,
        )
        issued = auth_service.issue_session(repo, tokens, user, client_ip(request, settings))
    except (UnknownProviderError, ProviderNotConfiguredError):
        raise
    except OAuthStateMissingError:
        return _login_redirect(settings, 'state_missing')
    except CSRFViolationError:
        return _login_redirect(settings, 'csrf_violation')
    except OAuthExchangeError as e:
        logger.warning("OAuth exchange failed", extra={"provider": provider, "error": e.detail})
        return _login_redirect(settings, 'oauth_failed')
    except (InvariantViolationError, DuplicateError):
        return _login_redirect(settings, 'account_conflict')
    except DomainError as e:
        logger.error("OAuth callback failed", extra={"provider": provider, "error": e.message})
        return _login_redirect(settings, 'server_error')
    except Exception as e:
        logger.error("Unexpected error in OAuth callback", extra={"provider": provider, "error": str(e)}, exc_info=True)
        return _login_redirect(settings, 'server_error')

    response = RedirectResponse(
        f"{settings.client_url.rstrip('/')}/dashboard?login=success",
        status_code=status.HTTP_302_FOUND,
    )
    set_auth_cookies(response, issued, settings)
    logger.info("OAuth login succeeded", extra={"userId": user.id, "provider": provider})
    return response
