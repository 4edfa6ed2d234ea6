from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from shared.exceptions import AuthError, ForbiddenError
from .jwt_handler import verify_access_token
from .principal import Principal, ROLE_CUSTOMER

# Defines the expected header format (Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


async def get_current_principal(request: Request, token: str = Depends(oauth2_scheme)) -> Principal:
    """Dependency to validate the JWT and return the caller as a Principal."""
    if not token:
        raise AuthError("Could not validate credentials")

    payload = verify_access_token(token)
    if payload is None:
        raise AuthError("Could not validate credentials")

    subject = payload.get("sub")
    if subject is None:
        raise AuthError("Could not validate credentials")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise AuthError("Could not validate credentials")

    # Store in request state for downstream use (like rate limiting)
    request.state.user_id = user_id
    return Principal(id=user_id, role=payload.get("role", ROLE_CUSTOMER))


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise ForbiddenError("Admin access required")
    return principal
