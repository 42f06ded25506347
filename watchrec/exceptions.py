import logging

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

logger = logging.getLogger(__name__)


class WatchRecException(Exception):
    """Base exception for the recommendation service"""
    pass


class DataStoreUnavailable(WatchRecException):
    """Postgres or redis could not serve a request that needs it."""
    pass


class ProfileStoreError(WatchRecException):
    """A cached profile exists but cannot be decoded."""
    pass


class ExternalProviderError(WatchRecException):
    """The metadata provider (TMDB) failed or returned an unusable payload."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler. Returns a 500 JSON body and keeps internals out of it.
    """
    request_id = _request_id(request)

    logger.error(
        "Unhandled exception occurred",
        extra={"request_id": request_id, "path": request.url.path},
        exc_info=exc
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred. Please try again.",
            "request_id": request_id
        },
    )


async def data_store_exception_handler(request: Request, exc: DataStoreUnavailable):
    request_id = _request_id(request)
    logger.error("Data store unavailable", extra={"request_id": request_id, "error": str(exc)})

    return JSONResponse(
        status_code=503,
        content={"error": "Service Unavailable", "message": str(exc), "request_id": request_id},
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Handle standard FastAPI HTTPExceptions.
    """
    request_id = _request_id(request)

    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code} error", extra={"request_id": request_id, "detail": exc.detail})
    else:
        logger.info(f"HTTP {exc.status_code} error", extra={"request_id": request_id, "detail": exc.detail})

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "request_id": request_id},
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle Pydantic validation errors.
    """
    request_id = _request_id(request)
    logger.info("Validation error", extra={"request_id": request_id, "errors": exc.errors()})

    return JSONResponse(
        status_code=422,
        content={
            "error": "Validation Error",
            "details": jsonable_errors(exc),
            "request_id": request_id
        },
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx may hold exception instances that json can't encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]
