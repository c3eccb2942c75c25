"""Environment-driven settings for the auth service.

``load_dotenv()`` in api/main.py runs before anything here reads the environment.
Secrets are required; everything else has a default.
"""

import logging
import os
import re
from dataclasses import dataclass
from functools import lru_cache

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r'^\s*(\d+)\s*([smhd]?)\s*$')
_UNIT_SECONDS = {'': 1, 's': 1, 'm': 60, 'h': 3600, 'd': 86400}


def parse_duration(value: str | None, default: int) -> int:
    """Parse '900', '15m', '24h' or '7d' into seconds."""
    if not value:
        return default
    match = _DURATION_RE.match(value.lower())
    if not match:
        raise ValueError(f"Invalid duration: {value!r} (use e.g. 900, 15m, 24h, 7d)")
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class Settings:
    jwt_secret: str
    jwt_refresh_secret: str
    access_token_ttl: int = 24 * 3600
    refresh_token_ttl: int = 7 * 24 * 3600
    cookie_max_age: int = 24 * 3600
    bcrypt_rounds: int = 10

    google_client_id: str | None = None
    google_client_secret: str | None = None
    github_client_id: str | None = None
    github_client_secret: str | None = None

    email_host: str = 'smtp.gmail.com'
    email_port: int = 587
    email_user: str | None = None
    email_password: str | None = None
    email_from: str | None = None

    app_base_url: str = 'http://localhost:5000'
    client_url: str = 'http://localhost:3000'
    production: bool = False
    trust_proxy: bool = False

    def oauth_credentials(self, provider: str) -> tuple[str | None, str | None]:
        if provider == 'google':
            return self.google_client_id, self.google_client_secret
        if provider == 'github':
            return self.github_client_id, self.github_client_secret
        return None, None

    def oauth_callback_url(self, provider: str) -> str:
        return f"{self.app_base_url.rstrip('/')}/auth/{provider}/callback"


def load_settings() -> Settings:
    """Build Settings from the environment, validating the signing secrets."""
    jwt_secret = os.getenv('JWT_SECRET')
    jwt_refresh_secret = os.getenv('JWT_REFRESH_SECRET')
    if not jwt_secret or not jwt_refresh_secret:
        raise ValueError(
            "JWT_SECRET and JWT_REFRESH_SECRET environment variables are required. "
            "Generate a secure key with: openssl rand -hex 32"
        )
    if jwt_secret == jwt_refresh_secret:
        raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must be different")
    for name, value in (('JWT_SECRET', jwt_secret), ('JWT_REFRESH_SECRET', jwt_refresh_secret)):
        if len(value) < 16:
            logger.warning(f"{name} should be at least 16 characters long")

    access_ttl = parse_duration(os.getenv('JWT_EXPIRY'), 24 * 3600)
    cookie_ms = os.getenv('COOKIE_EXPIRY')
    rounds = os.getenv('BCRYPT_ROUNDS') or os.getenv('PASSWORD_SALT_ROUNDS') or '10'
    environment = (os.getenv('NODE_ENV') or os.getenv('ENVIRONMENT') or 'development').lower()

    return Settings(
        jwt_secret=jwt_secret,
        jwt_refresh_secret=jwt_refresh_secret,
        access_token_ttl=access_ttl,
        refresh_token_ttl=parse_duration(os.getenv('JWT_REFRESH_EXPIRY'), 7 * 24 * 3600),
        cookie_max_age=int(cookie_ms) // 1000 if cookie_ms else access_ttl,
        bcrypt_rounds=int(rounds),
        google_client_id=os.getenv('GOOGLE_CLIENT_ID') or None,
        google_client_secret=os.getenv('GOOGLE_CLIENT_SECRET') or None,
        github_client_id=os.getenv('GITHUB_CLIENT_ID') or None,
        github_client_secret=os.getenv('GITHUB_CLIENT_SECRET') or None,
        email_host=os.getenv('EMAIL_HOST', 'smtp.gmail.com'),
        email_port=int(os.getenv('EMAIL_PORT', '587')),
        email_user=os.getenv('EMAIL_USER') or None,
        email_password=os.getenv('EMAIL_PASS') or None,
        email_from=os.getenv('EMAIL_FROM') or os.getenv('EMAIL_USER') or None,
        app_base_url=os.getenv('APP_BASE_URL', 'http://localhost:5000'),
        client_url=os.getenv('CLIENT_URL', 'http://localhost:3000'),
        production=environment == 'production',
        trust_proxy=_env_bool('TRUST_PROXY'),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
