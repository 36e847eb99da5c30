"""Application errors and the handlers that turn them into the JSON error envelope."""

from typing import Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

INVALID_DATA_MESSAGE = "Los datos proporcionados son inválidos."


class ApiError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_DATA"

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class InvalidDataError(ApiError):
    def __init__(self, details: Optional[str] = None, message: str = INVALID_DATA_MESSAGE):
        super().__init__(message, details)


class InsufficientStockError(ApiError):
    code = "INSUFFICIENT_STOCK"


class UnauthorizedError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


class ForbiddenError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


STATUS_CODES = {
    400: "INVALID_DATA",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


def error_body(code: str, message: str, details: Optional[str] = None) -> dict:
    return {"code": code, "message": message, "details": details}


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        message = error.get("msg", "")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.details),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = _format_validation_errors(exc)
    logger.warning(f"{request.method} {request.url.path} -> validation error: {details}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("INVALID_DATA", INVALID_DATA_MESSAGE, details),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = STATUS_CODES.get(exc.status_code, "INTERNAL_ERROR" if exc.status_code >= 500 else "ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def general_500_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_ERROR", "Error interno del servidor"),
    )


EXCEPTION_HANDLERS = {
    ApiError: api_error_handler,
    RequestValidationError: validation_error_handler,
    StarletteHTTPException: http_exception_handler,
    Exception: general_500_exception_handler,
}


def register_exception_handlers(app):
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
