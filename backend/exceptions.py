"""Service-level errors and their HTTP translation.

Services in ``crud`` raise these; routers never catch them. The handler
registered by ``register_exception_handlers`` turns each one into a JSON
response of the form ``{"detail": "<message>"}``.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger("errors")


class ClinicError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ClinicError):
    """Missing or malformed input."""
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDeniedError(ClinicError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ClinicError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ClinicError):
    """Uniqueness clash or a delete blocked by dependent rows."""
    status_code = status.HTTP_409_CONFLICT


class InvalidOperationError(ClinicError):
    """The request is well formed but would break a stock invariant."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PersistenceError(ClinicError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def clinic_error_handler(request: Request, exc: ClinicError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ClinicError, clinic_error_handler)
