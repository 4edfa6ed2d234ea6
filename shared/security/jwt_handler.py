from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from shared.config.settings import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALGORITHM, JWT_SECRET_KEY

# Tokens are issued by the identity service; verification only needs the secret
if not JWT_SECRET_KEY:
    raise ValueError("FATAL ERROR: JWT_SECRET_KEY is not set in the environment!")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a bearer token. ``sub`` carries the user id and ``role`` the caller's
    role (CUSTOMER when absent).
    """
    claims = dict(data)
    claims["exp"] = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return jwt.encode(claims, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_access_token(token: str) -> Optional[dict]:
    """Decoded claims, or None when the token is invalid or expired."""
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
