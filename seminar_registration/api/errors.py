# seminar_registration/api/errors.py
"""
Maps domain errors to HTTP responses.

The body always carries the stable error `code` next to the message so
clients can branch on it.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from seminar_registration.services.exceptions import (
    AlreadyResolved,
    AlreadyWaiting,
    DuplicateRegistration,
    NotRegistered,
    NotWaiting,
    OfferExpired,
    OfferNotFound,
    RegistrationLimitReached,
    RegistrationServiceError,
    SlotFull,
    SlotNotFound,
    TokenExpired,
    TokenNotFound,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    SlotNotFound: status.HTTP_404_NOT_FOUND,
    DuplicateRegistration: status.HTTP_409_CONFLICT,
    RegistrationLimitReached: status.HTTP_409_CONFLICT,
    SlotFull: status.HTTP_409_CONFLICT,
    TokenNotFound: status.HTTP_404_NOT_FOUND,
    TokenExpired: status.HTTP_410_GONE,
    AlreadyResolved: status.HTTP_409_CONFLICT,
    OfferNotFound: status.HTTP_404_NOT_FOUND,
    OfferExpired: status.HTTP_410_GONE,
    AlreadyWaiting: status.HTTP_409_CONFLICT,
    NotWaiting: status.HTTP_404_NOT_FOUND,
    NotRegistered: status.HTTP_404_NOT_FOUND,
}


def status_for(error: RegistrationServiceError) -> int:
    for error_type in type(error).__mro__:
        if error_type in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[error_type]
    return status.HTTP_400_BAD_REQUEST


async def registration_error_handler(request: Request, exc: RegistrationServiceError):
    return JSONResponse(
        status_code=status_for(exc),
        content={"detail": exc.message, "code": exc.code},
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable", "code": "STORE_UNAVAILABLE"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RegistrationServiceError, registration_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
