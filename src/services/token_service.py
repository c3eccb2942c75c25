"""Token issuer: signs and verifies access/refresh JWTs.

Access and refresh tokens use separate secrets and carry a ``type`` claim, so
neither can stand in for the other. Verification is pure: no I/O.
"""

import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from domain.model.errors import TokenExpiredError, TokenMalformedError, TokenSignatureError
from domain.model.token import TokenPayload, TokenType
from utils.config import Settings

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ('sub', 'email', 'type', 'iat', 'exp')


def hash_token(token: str) -> str:
    """Digest stored in place of refresh and reset tokens."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class TokenService:
    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def access_secret(self) -> str:
        return self.settings.jwt_secret

    @property
    def refresh_secret(self) -> str:
        return self.settings.jwt_refresh_secret

    # ── issuance ──────────────────────────────────────────

    def issue_access_token(self, user_id: str, email: str, now: datetime | None = None) -> str:
        return self._sign(
            user_id, email, TokenType.ACCESS,
            self.settings.access_token_ttl, self.access_secret, now,
        )

    def issue_refresh_token(self, user_id: str, email: str, now: datetime | None = None) -> str:
        return self._sign(
            user_id, email, TokenType.REFRESH,
            self.settings.refresh_token_ttl, self.refresh_secret, now,
        )

    def _sign(
        self,
        user_id: str,
        email: str,
        token_type: TokenType,
        ttl_seconds: int,
        secret: str,
        now: datetime | None,
    ) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "type": token_type.value,
            "jti": uuid.uuid4().hex,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=ttl_seconds),
        }
        return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)

    # ── verification ──────────────────────────────────────

    def verify(self, token: str, secret: str, expected_type: TokenType | None = None) -> TokenPayload:
        """Verify signature and expiry and return the claims.

        Raises:
            TokenMalformedError: not a decodable JWT, missing claims, or wrong token type
            TokenSignatureError: signature does not match ``secret``
            TokenExpiredError: signature valid but ``exp`` has passed
        """
        # Structure first, so garbage is reported as malformed rather than a bad signature
        try:
            jwt.get_unverified_header(token)
            unverified = jwt.get_unverified_claims(token)
        except JWTError:
            raise TokenMalformedError()
        if not isinstance(unverified, dict):
            raise TokenMalformedError()

        try:
            claims = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        except ExpiredSignatureError:
            raise TokenExpiredError()
        except JWTClaimsError:
            raise TokenMalformedError()
        except JWTError as e:
            logger.debug(f"JWT signature verification failed: {e}")
            raise TokenSignatureError()

        if any(claims.get(name) in (None, '') for name in _REQUIRED_CLAIMS):
            raise TokenMalformedError()
        try:
            token_type = TokenType(claims['type'])
        except ValueError:
            raise TokenMalformedError()
        if expected_type is not None and token_type != expected_type:
            raise TokenMalformedError()

        return TokenPayload(
            user_id=str(claims['sub']),
            email=str(claims['email']),
            token_type=token_type,
            issued_at=datetime.fromtimestamp(claims['iat'], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(claims['exp'], tz=timezone.utc),
            jti=str(claims.get('jti', '')),
        )

    def verify_access(self, token: str) -> TokenPayload:
        return self.verify(token, self.access_secret, TokenType.ACCESS)

    def verify_refresh(self, token: str) -> TokenPayload:
        return self.verify(token, self.refresh_secret, TokenType.REFRESH)
