"""OAuth flow coordinator: authorization-code grant with CSRF state and PKCE.

One coordinator serves every provider; provider differences live in the
ProviderDescriptor (see domain/model/oauth.py).

Flow:
    initiate  → state + PKCE pair stored in the server-side session → authorize URL
    complete  → pop stored entry → compare state → exchange code → resolve account
"""

import base64
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urlencode

from domain.model.errors import (
    CSRFViolationError,
    DomainError,
    InvariantViolationError,
    OAuthExchangeError,
    OAuthStateMissingError,
    ProviderNotConfiguredError,
    UnknownProviderError,
    ValidationError,
)
from domain.model.oauth import PROVIDERS, ExchangeResult, PkcePair, ProviderDescriptor
from domain.model.user import User
from port.oauth_client import OAuthClientPort
from port.session_store import SessionStorePort
from port.user_repository import UserRepository
from utils.config import Settings

logger = logging.getLogger(__name__)

OAUTH_SESSION_TTL_SECONDS = 10 * 60
SESSION_KEY_PREFIX = 'oauth:'


def generate_state() -> str:
    """256-bit CSRF state value."""
    return secrets.token_hex(32)


def make_pkce_pair() -> PkcePair:
    """PKCE verifier (256 bits of entropy) and its S256 challenge."""
    verifier = secrets.token_urlsafe(32)
    digest = hashlib.sha256(verifier.encode('ascii')).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b'=').decode('ascii')
    return PkcePair(verifier=verifier, challenge=challenge)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def get_descriptor(provider: str) -> ProviderDescriptor:
    descriptor = PROVIDERS.get(provider)
    if not descriptor:
        raise UnknownProviderError(provider)
    return descriptor


@dataclass(frozen=True)
class AuthorizationRedirect:
    url: str
    session_id: str


class OAuthCoordinator:
    def __init__(
        self,
        repo: UserRepository,
        sessions: SessionStorePort,
        client: OAuthClientPort,
        settings: Settings,
    ):
        self.repo = repo
        self.sessions = sessions
        self.client = client
        self.settings = settings

    def _credentials(self, descriptor: ProviderDescriptor) -> tuple[str, str]:
        client_id, client_secret = self.settings.oauth_credentials(descriptor.name)
        if not client_id or not client_secret:
            raise ProviderNotConfiguredError(descriptor.name)
        return client_id, client_secret

    # ── initiate ─────────────────────────────────────────────

    def initiate(self, provider: str, session_id: str | None = None) -> AuthorizationRedirect:
        """Store fresh state/PKCE values in the session and build the authorize URL."""
        descriptor = get_descriptor(provider)
        client_id, _ = self._credentials(descriptor)

        session_id = session_id or new_session_id()
        state = generate_state()
        pkce = make_pkce_pair()
        entry = {
            'state': state,
            'code_verifier': pkce.verifier,
            'created_at': datetime.now(timezone.utc).isoformat(),
        }
        if not self.sessions.put(session_id, SESSION_KEY_PREFIX + provider, entry, OAUTH_SESSION_TTL_SECONDS):
            raise DomainError("Failed to start OAuth flow")

        params = {
            'client_id': client_id,
            'redirect_uri': self.settings.oauth_callback_url(provider),
            'response_type': 'code',
            'scope': descriptor.scope_param,
            'state': state,
            'code_challenge': pkce.challenge,
            'code_challenge_method': pkce.method,
            **dict(descriptor.extra_authorize_params),
        }
        logger.info("OAuth flow started", extra={"provider": provider})
        return AuthorizationRedirect(
            url=f"{descriptor.authorize_url}?{urlencode(params)}",
            session_id=session_id,
        )

    # ── callback ─────────────────────────────────────────────

    async def complete(
        self,
        provider: str,
        session_id: str | None,
        state: str | None,
        code: str | None,
        error: str | None = None,
        current_user: User | None = None,
    ) -> User:
        """Finish the flow and return the local account to log in.

        The stored entry is removed before anything is compared, so a state value
        can be presented at most once.

        Raises:
            OAuthStateMissingError: no pending authorization in this session
            CSRFViolationError: ``state`` differs from the stored value
            OAuthExchangeError: provider reported an error or the exchange failed
            InvariantViolationError: identity belongs to another account
        """
        descriptor = get_descriptor(provider)
        client_id, client_secret = self._credentials(descriptor)

        pending = self.sessions.pop(session_id, SESSION_KEY_PREFIX + provider) if session_id else None
        if not pending:
            logger.warning("OAuth callback without pending authorization", extra={"provider": provider})
            raise OAuthStateMissingError()

        expected = pending.get('state')
        if not state or not expected or not hmac.compare_digest(str(state), str(expected)):
            logger.warning("OAuth state mismatch", extra={"provider": provider})
            raise CSRFViolationError()

        if error:
            logger.warning("Provider denied authorization", extra={"provider": provider, "error": error})
            raise OAuthExchangeError(error)
        if not code:
            raise OAuthExchangeError("callback has no authorization code")

        result = await self.client.exchange(
            descriptor,
            client_id,
            client_secret,
            code,
            pending.get('code_verifier', ''),
            self.settings.oauth_callback_url(provider),
        )
        return self._resolve_account(descriptor, result, current_user)

    def _resolve_account(
        self,
        descriptor: ProviderDescriptor,
        result: ExchangeResult,
        current_user: User | None,
    ) -> User:
        identity = result.identity
        now = datetime.now(timezone.utc)
        scopes = list(result.tokens.scopes or descriptor.scopes)

        user = self.repo.get_by_provider_id(identity.provider, identity.external_id)
        if user:
            if current_user and current_user.id != user.id:
                logger.warning("Provider identity already linked to another account", extra={
                    "provider": identity.provider, "userId": current_user.id,
                })
                raise InvariantViolationError("This provider account is already linked to another user")
        elif current_user:
            user = self.repo.get_by_id(current_user.id)
        elif identity.email and identity.email_verified:
            user = self.repo.get_by_email(identity.email)

        if user is None:
            return self._create_from_identity(result, scopes, now)

        user.link_provider(identity, result.tokens, scopes, now)
        if not self.repo.save(user):
            raise DomainError("Failed to link provider account")
        logger.info("Provider linked", extra={"userId": user.id, "provider": identity.provider})
        return user

    def _create_from_identity(self, result: ExchangeResult, scopes: list[str], now: datetime) -> User:
        identity = result.identity
        user = User.create_from_identity(identity, now)

        # Unverified provider e-mail must never take over an existing account
        if self.repo.get_by_email(user.email):
            logger.warning("OAuth email matches an account it cannot link to", extra={
                "provider": identity.provider,
            })
            raise InvariantViolationError(
                "An account with this email already exists. Log in and link the provider from your account."
            )

        user.link_provider(identity, result.tokens, scopes, now)
        created = self.repo.create(user)
        logger.info("User created from OAuth identity", extra={
            "userId": created.id, "provider": identity.provider,
        })
        return created

    # ── linking management ───────────────────────────────────

    def unlink(self, user: User, provider: str) -> User:
        """Remove a provider link, refusing to remove the last login method.

        Raises:
            UnknownProviderError: provider is not supported
            ValidationError: provider is not linked to this account
            InvariantViolationError: it is the only remaining login method
        """
        descriptor = get_descriptor(provider)
        not_linked = ValidationError(f"{descriptor.name.capitalize()} account is not linked")
        if not user.is_linked_to(provider):
            raise not_linked

        updated = self.repo.unlink_provider(user.id, provider)
        if updated is None:
            fresh = self.repo.get_by_id(user.id)
            if fresh and not fresh.is_linked_to(provider):
                raise not_linked
            raise InvariantViolationError(
                "Cannot unlink the only authentication method. Set a password first."
            )

        logger.info("Provider unlinked", extra={"userId": user.id, "provider": provider})
        return updated
