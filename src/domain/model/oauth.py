"""OAuth value objects: provider descriptors, external identities, provider links."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


# ── Provider descriptors ─────────────────────────────────


@dataclass(frozen=True)
class ProviderDescriptor:
    """Everything the OAuth coordinator needs to know about one identity provider.

    The ``*_field`` attributes map the provider's user-info JSON onto
    ``ExternalIdentity``.
    """
    name: str
    authorize_url: str
    token_url: str
    userinfo_url: str
    scopes: tuple[str, ...]
    id_field: str
    email_field: str
    username_field: str
    display_name_field: str
    profile_url_field: str
    emails_url: str | None = None
    email_verified_field: str | None = None
    trust_email_verified: bool = False
    userinfo_accept: str = 'application/json'
    extra_authorize_params: tuple[tuple[str, str], ...] = ()

    @property
    def scope_param(self) -> str:
        return ' '.join(self.scopes)

    def to_identity(self, userinfo: dict[str, Any]) -> 'ExternalIdentity':
        """Map a user-info payload onto an ExternalIdentity."""
        raw_id = userinfo.get(self.id_field)
        email = userinfo.get(self.email_field)
        if self.trust_email_verified:
            verified = bool(email)
        elif self.email_verified_field:
            verified = bool(userinfo.get(self.email_verified_field))
        else:
            verified = False
        return ExternalIdentity(
            provider=self.name,
            external_id=str(raw_id) if raw_id is not None else '',
            email=email.strip().lower() if isinstance(email, str) and email.strip() else None,
            email_verified=verified,
            username=userinfo.get(self.username_field),
            display_name=userinfo.get(self.display_name_field),
            profile_url=userinfo.get(self.profile_url_field),
        )


GOOGLE = ProviderDescriptor(
    name='google',
    authorize_url='https://accounts.google.com/o/oauth2/v2/auth',
    token_url='https://oauth2.googleapis.com/token',
    userinfo_url='https://www.googleapis.com/oauth2/v2/userinfo',
    scopes=('profile', 'email'),
    id_field='id',
    email_field='email',
    username_field='email',
    display_name_field='name',
    profile_url_field='picture',
    email_verified_field='verified_email',
    extra_authorize_params=(('access_type', 'offline'), ('prompt', 'consent')),
)

GITHUB = ProviderDescriptor(
    name='github',
    authorize_url='https://github.com/login/oauth/authorize',
    token_url='https://github.com/login/oauth/access_token',
    userinfo_url='https://api.github.com/user',
    scopes=('user:email',),
    id_field='id',
    email_field='email',
    username_field='login',
    display_name_field='name',
    profile_url_field='html_url',
    emails_url='https://api.github.com/user/emails',
    userinfo_accept='application/vnd.github+json',
)

PROVIDERS: dict[str, ProviderDescriptor] = {p.name: p for p in (GOOGLE, GITHUB)}


# ── Exchange results ─────────────────────────────────────


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity asserted by a provider after a successful code exchange."""
    provider: str
    external_id: str
    email: str | None = None
    email_verified: bool = False
    username: str | None = None
    display_name: str | None = None
    profile_url: str | None = None


@dataclass(frozen=True)
class ProviderTokens:
    """Tokens returned by the provider's token endpoint."""
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    scopes: tuple[str, ...] = ()


@dataclass(frozen=True)
class ExchangeResult:
    identity: ExternalIdentity
    tokens: ProviderTokens


@dataclass(frozen=True)
class PkcePair:
    verifier: str
    challenge: str
    method: str = 'S256'


# ── Per-account link ─────────────────────────────────────


@dataclass
class OAuthLink:
    """Provider-specific fields stored on the user record."""
    external_id: str
    access_token: str | None = None
    refresh_token: str | None = None
    token_expiry: datetime | None = None
    profile_url: str | None = None
    username: str | None = None
    linked_at: datetime | None = None
    scopes: list[str] = field(default_factory=list)
