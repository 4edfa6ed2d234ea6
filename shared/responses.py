from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

from .exceptions import AppError

logger = structlog.get_logger(__name__)


def success_response(data: Any = None, message: str = "OK", status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": jsonable_encoder(data), "message": message},
    )


def error_response(
    message: str,
    status_code: int = 400,
    code: str = "error",
    details: Optional[Any] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    error = {"code": code}
    if details is not None:
        error["details"] = jsonable_encoder(details)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "message": message},
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        # Internal detail stays in the logs
        logger.error("request_failed", path=request.url.path, error=exc.message, code=exc.code)
        return error_response("Internal server error", exc.status_code, exc.code)
    return error_response(exc.message, exc.status_code, exc.code, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(str(exc.detail), exc.status_code, "http_error", headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request data") if errors else "Invalid request data"
    return error_response(message, 400, "validation_error", details=errors)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return error_response(f"Rate limit exceeded: {exc.detail}", 429, "rate_limited")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    return error_response("Internal server error", 500, "internal_error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
