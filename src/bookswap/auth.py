# ABOUTME: Signed bearer tokens that identify the acting user.
# ABOUTME: Issues and verifies HS256 JWTs carrying the user id; nothing else is trusted.

from datetime import timedelta

import jwt

from bookswap.clock import utcnow
from bookswap.config import AuthConfig


class AuthenticationError(Exception):
    """Raised when a token is missing, malformed, expired, or badly signed."""


def issue_token(user_id: int, config: AuthConfig, expires_in: timedelta | None = None) -> str:
    """Create a signed access token for a user."""
    now = utcnow()
    ttl = expires_in if expires_in is not None else timedelta(minutes=config.token_ttl_minutes)
    claims = {"sub": str(user_id), "iat": now, "exp": now + ttl}
    return jwt.encode(claims, config.secret_key, algorithm=config.algorithm)


def authenticate(token: str, config: AuthConfig) -> int:
    """Return the user id a token was issued for.

    Raises:
        AuthenticationError: If the token cannot be trusted.
    """
    try:
        payload = jwt.decode(token, config.secret_key, algorithms=[config.algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token has expired") from exc
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Invalid token") from exc

    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        raise AuthenticationError("Token does not name a user")
    return int(subject)
