"""
Centralized exception handling for SeatBook API.

This module provides:
- Base APIException class extending FastAPI's HTTPException.
- Custom domain-specific exceptions with appropriate status codes and headers.
- Utility functions for formatting DB errors, logging, and routing exceptions.

Usage:
    - Raise specific exceptions in route handlers or services.
    - Use `handle()` to normalize raw exceptions (DB, Redis, Pydantic) into API-friendly responses.
    - `errorKind()` gives the stable name of an error, sent in the `X-Error`
      header and in the `data.errorKind` field of failed responses.
"""

from traceback import format_exception
from logging import getLogger
from typing import Iterable
from fastapi import status, HTTPException
from sqlalchemy.exc import IntegrityError
from psycopg2.errorcodes import UNIQUE_VIOLATION, FOREIGN_KEY_VIOLATION
from pydantic import ValidationError
from redis.exceptions import RedisError
from sqlalchemy import Column


# ---------------------------------------------------------------------------
# Utility functions
# ---------------------------------------------------------------------------
def formatIntegrityError(e: IntegrityError) -> str:
    """
    Format a database integrity error into a user-friendly message.
    """
    diag = getattr(e.orig, "diag", None)
    errorMessage: str = getattr(diag, "message_detail", None) or str(e.orig)
    errorMessage = errorMessage.translate({ord(i): None for i in '\\"\\.\\(\\)'})
    errorMessage = errorMessage.replace("Key ", "For ")
    errorMessage = errorMessage.replace("=", " value ")
    return errorMessage


def integrityErrorCode(e: IntegrityError) -> str | None:
    """
    Return the SQLSTATE of an integrity error.

    PostgreSQL reports it through `pgcode`, SQLite only through the message,
    which is mapped to the equivalent SQLSTATE.
    """
    code = getattr(e.orig, "pgcode", None)
    if code is not None:
        return code
    message = str(e.orig)
    if "UNIQUE constraint failed" in message:
        return UNIQUE_VIOLATION
    if "FOREIGN KEY constraint failed" in message:
        return FOREIGN_KEY_VIOLATION
    return None


def logException(e: Exception) -> None:
    """Log an exception with traceback using Uvicorn's error logger."""
    detail = str(format_exception(type(e), e, e.__traceback__))
    logger = getLogger("uvicorn.error")
    logger.error(detail)


def errorKind(e: HTTPException) -> str:
    """Return the `X-Error` name of an exception, defaulting to its class name."""
    headers = e.headers or {}
    return headers.get("X-Error", type(e).__name__)


def errorEnvelope(e: HTTPException) -> dict:
    """
    Build the `{success, data, message}` body of a failed response.

    `data.errorKind` always names the error. Colliding seat numbers and
    validation error lists are attached to `data` as well.
    """
    data = {"errorKind": errorKind(e)}
    seatNumbers = getattr(e, "seat_numbers", None)
    if seatNumbers is not None:
        data["seat_numbers"] = seatNumbers
    if isinstance(e.detail, str):
        message = e.detail
    else:
        data["errors"] = e.detail
        message = "Request validation failed"
    return {"success": False, "data": data, "message": message}


# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------
class APIException(HTTPException):
    """
    Base class for all application-specific exceptions.

    Provides default handling of status_code, detail, and headers.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    detail = None
    headers = None

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("status_code", self.status_code)
        kwargs.setdefault("detail", self.detail)
        kwargs.setdefault("headers", self.headers)
        super().__init__(*args, **kwargs)


# ---------------------------------------------------------------------------
# Exception handling entrypoint
# ---------------------------------------------------------------------------
def handle(e: Exception):
    """
    Normalize and re-raise exceptions as API-friendly errors.

    Converts raw exceptions from DB, Pydantic, Redis, etc. into
    corresponding APIException subclasses.
    """
    if isinstance(e, IntegrityError):
        code = integrityErrorCode(e)
        if code == UNIQUE_VIOLATION:
            raise UniqueViolation(formatIntegrityError(e))
        if code == FOREIGN_KEY_VIOLATION:
            raise ForeignKeyViolation(formatIntegrityError(e))
    if isinstance(e, ValidationError):
        raise PydanticError(detail=e.errors(include_url=False, include_context=False))
    if isinstance(e, APIException):
        raise e
    if isinstance(e, RedisError):
        raise RedisDBError(detail=str(e))

    logException(e)
    raise e


# ---------------------------------------------------------------------------
# Exception Classes
# ---------------------------------------------------------------------------
class PydanticError(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "PydanticError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class UniqueViolation(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "UniqueViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class ForeignKeyViolation(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "ForeignKeyViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class UnknownValue(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    headers = {"X-Error": "UnknownValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InvalidValue(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "InvalidValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InvalidIdentifier(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Invalid ID provided"
    headers = {"X-Error": "InvalidIdentifier"}


class InvalidTransition(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "InvalidTransition"}

    def __init__(self, column_name: Column):
        detail = f"The {column_name.name} cannot be set to the provided value"
        super().__init__(detail=detail)


class InvalidLayout(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "InvalidLayout"}

    def __init__(self, detail: str = "Invalid seat layout"):
        super().__init__(detail=detail)


class SeatNumberCollision(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "SeatNumberCollision"}

    def __init__(self, seatNumbers: Iterable[str] = ()):
        self.seat_numbers = sorted(seatNumbers)
        detail = f"Seat numbers already exist: {', '.join(self.seat_numbers)}"
        super().__init__(detail=detail)


class SeatUnavailable(APIException):
    status_code = status.HTTP_409_CONFLICT
    detail = "The seat is already booked or not open for sale"
    headers = {"X-Error": "SeatUnavailable"}


class SeatInUse(APIException):
    status_code = status.HTTP_409_CONFLICT
    detail = "The seat is referenced by an active ticket"
    headers = {"X-Error": "SeatInUse"}


class DataInUse(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "DataInUse"}

    def __init__(self, orm_class):
        detail = f"The {orm_class.__name__} is currently in use"
        super().__init__(detail=detail)


class LockAcquireTimeout(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "LockAcquireTimeout"}
    detail = "Lock acquisition timed out"


class ExceededMaxLimit(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "ExceededMaxLimit"}

    def __init__(self, orm_class):
        detail = f"Maximum limit for {orm_class.__name__} is exceeded"
        super().__init__(detail=detail)


class RedisDBError(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    headers = {"X-Error": "RedisAPIError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)
