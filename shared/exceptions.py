"""
Error taxonomy shared by every service.

Each error carries the HTTP status it maps to, so routers never translate
domain failures by hand. The exception handlers in ``shared.responses`` turn
them into the uniform ``{success, error, message}`` envelope.
"""
from typing import Any, Optional


class AppError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"


class AuthError(AppError):
    status_code = 401
    code = "unauthenticated"


class ForbiddenError(AppError):
    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"


class StateError(AppError):
    status_code = 400
    code = "invalid_state"


class InvalidSignatureError(AppError):
    status_code = 401
    code = "invalid_signature"


class InternalError(AppError):
    status_code = 500
    code = "internal_error"


class GatewayError(AppError):
    status_code = 502
    code = "gateway_error"


class GatewayUnavailableError(GatewayError):
    status_code = 503
    code = "gateway_unavailable"


# --- Order creation failures ---

class EmptyCartError(ValidationError):
    code = "empty_cart"


class InvalidAddressError(NotFoundError):
    code = "invalid_address"


class ProductUnavailableError(ValidationError):
    code = "product_unavailable"


class InsufficientStockError(StateError):
    code = "insufficient_stock"
