# domain/model/user.py

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from domain.model.oauth import ExternalIdentity, OAuthLink, ProviderTokens

LOCAL_PROVIDER = 'local'


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup (trimmed, lowercase)."""
    return email.strip().lower()


# ── User Domain Model ────────────────────────────────────


@dataclass
class User:
    """Domain model representing an account and all of its login state."""
    id: str
    first_name: str
    last_name: str
    email: str
    created_at: datetime
    updated_at: datetime

    password_hash: str | None = None

    # lockout
    failed_login_attempts: int = 0
    is_locked: bool = False
    lock_until: datetime | None = None

    # login tracking
    last_login: datetime | None = None
    login_ip: str | None = None
    login_count: int = 0

    # password reset (digest of the emailed token)
    reset_password_token: str | None = None
    reset_password_expiry: datetime | None = None

    # digest of the single active refresh token
    refresh_token_hash: str | None = None

    # OAuth
    provider: str = LOCAL_PROVIDER
    oauth: dict[str, OAuthLink] = field(default_factory=dict)
    oauth_accounts_linked: list[str] = field(default_factory=list)
    last_oauth_provider: str | None = None
    oauth_scopes: list[str] = field(default_factory=list)
    oauth_consent_date: datetime | None = None

    # email verification
    is_email_verified: bool = False
    email_verification_token: str | None = None
    email_verification_expiry: datetime | None = None

    # reserved for 2FA, unused
    two_factor_enabled: bool = False
    two_factor_secret: str | None = None

    version: int = 0

    # ── factories ─────────────────────────────────────────

    @staticmethod
    def create_local(first_name: str, last_name: str, email: str, password_hash: str) -> 'User':
        now = datetime.now(timezone.utc)
        return User(
            id=uuid.uuid4().hex,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=normalize_email(email),
            created_at=now,
            updated_at=now,
            password_hash=password_hash,
        )

    @staticmethod
    def create_from_identity(identity: ExternalIdentity, now: datetime | None = None) -> 'User':
        """First-time OAuth signup. The account has no password."""
        now = now or datetime.now(timezone.utc)
        email = identity.email or f"{identity.username or identity.external_id}@{identity.provider}.local"
        first_name, last_name = _split_display_name(identity)
        return User(
            id=uuid.uuid4().hex,
            first_name=first_name,
            last_name=last_name,
            email=normalize_email(email),
            created_at=now,
            updated_at=now,
            provider=identity.provider,
            is_email_verified=identity.email_verified,
        )

    # ── queries ───────────────────────────────────────────

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    @property
    def linked_providers(self) -> list[str]:
        return [name for name, link in self.oauth.items() if link.external_id]

    @property
    def auth_method_count(self) -> int:
        return int(self.has_password) + len(self.linked_providers)

    def is_linked_to(self, provider: str) -> bool:
        link = self.oauth.get(provider)
        return bool(link and link.external_id)

    def can_unlink(self, provider: str) -> bool:
        """True when removing ``provider`` still leaves at least one login method."""
        return self.is_linked_to(provider) and self.auth_method_count > 1

    def reset_token_valid(self, token_hash: str, now: datetime) -> bool:
        return (
            self.reset_password_token is not None
            and self.reset_password_token == token_hash
            and self.reset_password_expiry is not None
            and self.reset_password_expiry > now
        )

    # ── state transitions ─────────────────────────────────

    def link_provider(
        self,
        identity: ExternalIdentity,
        tokens: ProviderTokens,
        scopes: list[str],
        now: datetime | None = None,
    ) -> None:
        """Attach (or refresh) a provider identity on this account."""
        now = now or datetime.now(timezone.utc)
        existing = self.oauth.get(identity.provider)
        expiry = now + timedelta(seconds=tokens.expires_in) if tokens.expires_in else None
        self.oauth[identity.provider] = OAuthLink(
            external_id=identity.external_id,
            access_token=tokens.access_token,
            # providers only hand out a refresh token on first consent
            refresh_token=tokens.refresh_token or (existing.refresh_token if existing else None),
            token_expiry=expiry,
            profile_url=identity.profile_url,
            username=identity.username,
            linked_at=existing.linked_at if existing and existing.linked_at else now,
            scopes=list(scopes),
        )
        if identity.provider not in self.oauth_accounts_linked:
            self.oauth_accounts_linked.append(identity.provider)
        if identity.email_verified and identity.email == self.email:
            self.is_email_verified = True
        self.last_oauth_provider = identity.provider
        self.oauth_scopes = sorted(set(self.oauth_scopes) | set(scopes))
        self.oauth_consent_date = now
        self.updated_at = now

    def unlink_provider(self, provider: str) -> None:
        self.oauth.pop(provider, None)
        if provider in self.oauth_accounts_linked:
            self.oauth_accounts_linked.remove(provider)
        self.updated_at = datetime.now(timezone.utc)

    def clear_provider_tokens(self) -> None:
        for link in self.oauth.values():
            link.access_token = None
            link.refresh_token = None
            link.token_expiry = None
        self.updated_at = datetime.now(timezone.utc)

    def set_reset_token(self, token_hash: str, expiry: datetime) -> None:
        self.reset_password_token = token_hash
        self.reset_password_expiry = expiry

    def clear_reset_token(self) -> None:
        self.reset_password_token = None
        self.reset_password_expiry = None

    def record_login(self, ip: str | None, now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        self.last_login = now
        self.login_ip = ip
        self.login_count += 1
        self.updated_at = now


def _split_display_name(identity: ExternalIdentity) -> tuple[str, str]:
    name = (identity.display_name or '').strip()
    if name:
        first, _, last = name.partition(' ')
        return first, last.strip() or 'User'
    if identity.username and '@' not in identity.username:
        return identity.username, 'User'
    return identity.provider.capitalize(), 'User'
