"""
Service-level errors and their HTTP rendering.

Services raise these instead of HTTPException so they stay usable outside a
request; the handlers below turn them into the same {"detail": ...} body that
FastAPI uses for HTTPException.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class TodoxError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(TodoxError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(TodoxError):
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFoundError(TodoxError):
    status_code = status.HTTP_404_NOT_FOUND


class PayloadTooLargeError(TodoxError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


class ImportFormatError(ValidationError):
    """Uploaded import file could not be parsed; `error` carries the parser message."""

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.error = error


class StorageUnavailableError(TodoxError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def todox_error_handler(request: Request, exc: TodoxError) -> JSONResponse:
    body = {"detail": exc.message}
    if isinstance(exc, ImportFormatError) and exc.error:
        body["error"] = exc.error
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TodoxError, todox_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
