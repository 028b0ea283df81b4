"""JWT access-token handling.

Tokens are issued by the identity service; this API only validates them
and resolves the user they name.
"""

import uuid
from datetime import datetime, timedelta

from jose import JWTError, jwt
from pydantic import BaseModel

from tiffin.core.config import settings

ALGORITHM = "HS256"


class TokenPayload(BaseModel):
    """JWT token payload structure."""

    sub: str  # User ID
    exp: datetime
    iat: datetime
    type: str  # "access" or "refresh"


def create_access_token(user_id: uuid.UUID, expires_delta: timedelta | None = None) -> str:
    """Create an access token for a user.

    Args:
        user_id: User UUID
        expires_delta: Lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        str: Encoded token
    """
    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {
        "sub": str(user_id),
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> TokenPayload | None:
    """Decode and validate a JWT token.

    Returns:
        TokenPayload | None: Decoded payload if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        return TokenPayload(
            sub=payload["sub"],
            exp=datetime.utcfromtimestamp(payload["exp"]),
            iat=datetime.utcfromtimestamp(payload["iat"]),
            type=payload["type"],
        )
    except (JWTError, KeyError):
        return None


def get_user_id_from_token(token: str) -> uuid.UUID | None:
    """Extract user ID from a valid, unexpired access token."""
    payload = decode_token(token)
    if payload is None or payload.type != "access":
        return None
    if payload.exp < datetime.utcnow():
        return None
    try:
        return uuid.UUID(payload.sub)
    except ValueError:
        return None
