from fastapi import Depends, HTTPException, Request

from adapter.external.oauth_client import HttpOAuthClient
from adapter.mongodb.connection import get_mongodb_client, DATABASE_NAME
from adapter.mongodb.user_repository import MongoUserRepository
from adapter.redis.rate_limiter import RedisRateLimiter
from adapter.redis.session_store import RedisSessionStore
from adapter.smtp.mailer import SmtpMailer
from port.mailer import MailerPort
from port.oauth_client import OAuthClientPort
from port.rate_limiter import RateLimiterPort
from port.session_store import SessionStorePort
from port.user_repository import UserRepository
from services import rate_limit_service
from services.oauth_service import OAuthCoordinator
from services.rate_limit_service import RateLimitPolicy
from services.token_service import TokenService
from utils.config import Settings, get_settings as load_cached_settings


def _get_db():
    """Get MongoDB database, raising 503 if unavailable."""
    client = get_mongodb_client()
    if client is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return client[DATABASE_NAME]


def get_settings() -> Settings:
    return load_cached_settings()


def get_user_repo() -> UserRepository:
    return MongoUserRepository(_get_db())


def get_session_store() -> SessionStorePort:
    return RedisSessionStore()


def get_rate_limiter() -> RateLimiterPort:
    return RedisRateLimiter()


def get_mailer(settings: Settings = Depends(get_settings)) -> MailerPort:
    return SmtpMailer(
        host=settings.email_host,
        port=settings.email_port,
        user=settings.email_user,
        password=settings.email_password,
        from_email=settings.email_from,
    )


def get_oauth_client() -> OAuthClientPort:
    return HttpOAuthClient()


def get_token_service(settings: Settings = Depends(get_settings)) -> TokenService:
    return TokenService(settings)


def get_oauth_coordinator(
    repo: UserRepository = Depends(get_user_repo),
    sessions: SessionStorePort = Depends(get_session_store),
    client: OAuthClientPort = Depends(get_oauth_client),
    settings: Settings = Depends(get_settings),
) -> OAuthCoordinator:
    return OAuthCoordinator(repo, sessions, client, settings)


# ── request metadata ─────────────────────────────────────


def client_ip(request: Request, settings: Settings) -> str:
    """Caller address; the first X-Forwarded-For hop only behind a trusted proxy."""
    if settings.trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
    return request.client.host if request.client else "unknown"


def rate_limit(policy: RateLimitPolicy):
    """Dependency factory: count the request against ``policy`` before the handler runs."""

    def dependency(
        request: Request,
        limiter: RateLimiterPort = Depends(get_rate_limiter),
        settings: Settings = Depends(get_settings),
    ) -> None:
        rate_limit_service.enforce(limiter, policy, client_ip(request, settings))

    return dependency
