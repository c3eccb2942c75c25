"""Domain-level exceptions.

Services raise these errors to express business rule violations.
The API layer maps them to HTTP status codes (see api/error_handling.py).
Every error carries a stable ``code`` that clients can branch on.
"""

from datetime import datetime


class DomainError(Exception):
    """Base class for all domain errors."""

    code = 'INTERNAL_ERROR'

    def __init__(self, message: str = 'Internal server error'):
        self.message = message
        super().__init__(message)


class NotFoundError(DomainError):
    """Requested entity does not exist."""

    code = 'NOT_FOUND'


class DuplicateError(DomainError):
    """Entity with the same unique key already exists."""

    code = 'EMAIL_ALREADY_EXISTS'


class ValidationError(DomainError):
    """Input violates a business validation rule."""

    code = 'VALIDATION_FAILED'


class InvariantViolationError(DomainError):
    """Operation would break an account invariant (e.g. removing the last login method)."""

    code = 'INVARIANT_VIOLATION'


# ── credential login ─────────────────────────────────────


class InvalidCredentialsError(DomainError):
    """Unknown account or wrong password. The message never says which."""

    code = 'INVALID_CREDENTIALS'

    def __init__(self, message: str = 'Invalid email or password'):
        super().__init__(message)


class AccountLockedError(DomainError):
    """Account is temporarily locked after repeated failed logins."""

    code = 'ACCOUNT_LOCKED'

    def __init__(self, lock_until: datetime | None, minutes_remaining: int):
        self.lock_until = lock_until
        self.minutes_remaining = minutes_remaining
        super().__init__(f"Account is locked. Try again in {minutes_remaining} minutes.")


# ── tokens ───────────────────────────────────────────────


class TokenVerificationError(DomainError):
    """Base class for JWT verification failures."""

    code = 'TOKEN_VERIFICATION_FAILED'


class TokenExpiredError(TokenVerificationError):
    code = 'TOKEN_EXPIRED'

    def __init__(self, message: str = 'Token expired'):
        super().__init__(message)


class TokenMalformedError(TokenVerificationError):
    code = 'INVALID_TOKEN'

    def __init__(self, message: str = 'Invalid token'):
        super().__init__(message)


class TokenSignatureError(TokenVerificationError):
    code = 'TOKEN_VERIFICATION_FAILED'

    def __init__(self, message: str = 'Token verification failed'):
        super().__init__(message)


class InvalidOrExpiredTokenError(DomainError):
    """Reset or refresh token that is unknown, already used or past its expiry.

    Both token kinds share the response shape; ``code`` tells them apart internally.
    """

    RESET = 'RESET_TOKEN_INVALID'
    REFRESH = 'REFRESH_TOKEN_INVALID'
    code = RESET

    def __init__(self, message: str = 'Invalid or expired token', code: str = RESET):
        self.code = code
        super().__init__(message)


class UnauthorizedError(DomainError):
    """Protected request without a usable access credential."""

    code = 'UNAUTHORIZED'

    def __init__(self, message: str = 'Unauthorized access', code: str = 'UNAUTHORIZED'):
        self.code = code
        super().__init__(message)


# ── OAuth ────────────────────────────────────────────────


class UnknownProviderError(NotFoundError):
    code = 'UNKNOWN_PROVIDER'

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unsupported OAuth provider: {provider}")


class ProviderNotConfiguredError(DomainError):
    code = 'PROVIDER_NOT_CONFIGURED'

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"{provider.capitalize()} OAuth is not configured")


class CSRFViolationError(DomainError):
    """Callback ``state`` does not match the value stored in the session."""

    code = 'CSRF_VIOLATION'

    def __init__(self, message: str = 'OAuth state mismatch'):
        super().__init__(message)


class OAuthStateMissingError(DomainError):
    """Callback arrived without a pending authorization in the session."""

    code = 'OAUTH_STATE_MISSING'

    def __init__(self, message: str = 'No pending OAuth authorization'):
        super().__init__(message)


class OAuthExchangeError(DomainError):
    """Provider rejected the authorization or the code exchange failed.

    ``detail`` holds the provider's own error text. It is logged, never shown to the browser.
    """

    code = 'OAUTH_EXCHANGE_FAILED'

    def __init__(self, detail: str = ''):
        self.detail = detail
        super().__init__('OAuth authentication failed')


# ── throttling ───────────────────────────────────────────


class RateLimitedError(DomainError):
    code = 'RATE_LIMITED'

    def __init__(self, message: str, retry_after: int):
        self.retry_after = retry_after
        super().__init__(message)
