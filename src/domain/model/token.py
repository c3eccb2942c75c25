from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TokenType(str, Enum):
    ACCESS = 'access'
    REFRESH = 'refresh'


@dataclass(frozen=True)
class TokenPayload:
    """Verified claims of an access or refresh token."""
    user_id: str
    email: str
    token_type: TokenType
    issued_at: datetime
    expires_at: datetime
    jti: str


@dataclass(frozen=True)
class IssuedTokens:
    """Access/refresh pair handed to the API layer for cookie setting."""
    access_token: str
    refresh_token: str
    access_max_age: int
    refresh_max_age: int
