"""Maps exceptions to the JSON error envelope"""

from typing import Any, Dict, Optional
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from chatbridge.core.exceptions import AuthenticationError, BaseAPIException, RateLimitExceededError
from chatbridge.schemas.response import ErrorResponse

logger = logging.getLogger(__name__)


def error_body(request: Request, code: str, error: str, details: Any = None) -> Dict[str, Any]:
    return ErrorResponse(code=code, error=error, details=details, path=request.url.path).model_dump()


def _headers_for(exc: BaseAPIException) -> Optional[Dict[str, str]]:
    if isinstance(exc, RateLimitExceededError) and exc.retry_after:
        return {"Retry-After": str(exc.retry_after)}
    if isinstance(exc, AuthenticationError):
        return {"WWW-Authenticate": "Bearer"}
    return None


async def api_exception_handler(request: Request, exc: BaseAPIException) -> JSONResponse:
    # Authentication failures log their private reason; callers get the generic message
    detail = exc.reason if isinstance(exc, AuthenticationError) else exc.message
    server_side = exc.status_code >= 500
    logger.log(
        logging.ERROR if server_side else logging.WARNING,
        "%s %s -> %s (%s): %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.code,
        detail,
        exc_info=exc if server_side else None,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.code, exc.message, exc.details),
        headers=_headers_for(exc),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    # Field names only; submitted values may be passwords
    logger.warning(
        "%s %s -> 422 invalid fields: %s",
        request.method,
        request.url.path,
        [p["field"] for p in problems],
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body(request, "invalid_input", "Validation failed", problems),
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request, "database_error", "A database error occurred. Please try again later."),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.critical("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request, "internal_error", "An unexpected error occurred."),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseAPIException, api_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
