from .jwt_handler import create_access_token, verify_access_token
from .principal import Principal, ROLE_ADMIN, ROLE_CUSTOMER
from .dependencies import get_current_principal, require_admin
from .rate_limiter import limiter, user_id_or_ip

__all__ = [
    "create_access_token",
    "verify_access_token",
    "Principal",
    "ROLE_ADMIN",
    "ROLE_CUSTOMER",
    "get_current_principal",
    "require_admin",
    "limiter",
    "user_id_or_ip"
]
