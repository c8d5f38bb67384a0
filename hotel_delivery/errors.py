"""
Domain error taxonomy.

Every failure the core raises carries a stable ``kind`` and a human-readable
message. The HTTP layer maps kinds to status codes in one place
(``register_exception_handlers``); services never raise ``HTTPException``.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for errors surfaced to callers."""

    kind = "Internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgument(DomainError):
    """Malformed coordinates, bad quantities, unknown menu items."""

    kind = "InvalidArgument"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(DomainError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class PreconditionFailed(DomainError):
    """The request is well-formed but a business rule rejects it."""

    kind = "PreconditionFailed"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidTransition(DomainError):
    kind = "InvalidTransition"
    status_code = status.HTTP_409_CONFLICT


class PermissionDenied(DomainError):
    kind = "PermissionDenied"
    status_code = status.HTTP_403_FORBIDDEN


class AlreadyExists(DomainError):
    kind = "AlreadyExists"
    status_code = status.HTTP_409_CONFLICT


class Conflict(DomainError):
    """Optimistic-concurrency loss: the row changed since it was read."""

    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT


def _error_body(kind: str, message: str) -> dict:
    return {"error": kind, "message": message}


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.warning(
        "Request failed: %s",
        exc.message,
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "error_kind": exc.kind,
            "path": request.url.path,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.kind, exc.message))


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=InvalidArgument.status_code,
        content=_error_body(InvalidArgument.kind, details or "Invalid request"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
