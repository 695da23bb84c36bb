# app/core/errors.py
"""
Application error type and its translation to HTTP responses.

Every business failure is raised as a single `AppError` tagged with an
`ErrorKind`. The transport layer maps kinds to status codes through
`STATUS_BY_KIND`, which covers every member of the enum, and renders the
same JSON envelope used by successful responses:

    {"success": false, "error": {"kind": ..., "code": ..., "message": ...}}
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from tortoise.exceptions import DBConnectionError, IntegrityError, OperationalError

logger = logging.getLogger("uvicorn.error")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    CONSTRAINT = "constraint"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.CONSTRAINT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppError(Exception):
    """A business-level failure with a stable machine-readable code."""

    def __init__(
        self,
        kind: ErrorKind,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"kind": self.kind.value, "code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body

    def __repr__(self) -> str:
        return f"AppError({self.kind.value}, {self.code!r}, {self.message!r})"


# -------- constructors for the common kinds --------
def unauthorized(code: str, message: str, details: dict | None = None) -> AppError:
    return AppError(ErrorKind.UNAUTHORIZED, code, message, details)


def forbidden(code: str, message: str, details: dict | None = None) -> AppError:
    return AppError(ErrorKind.FORBIDDEN, code, message, details)


def not_found(code: str, message: str) -> AppError:
    return AppError(ErrorKind.NOT_FOUND, code, message)


def conflict(code: str, message: str) -> AppError:
    return AppError(ErrorKind.CONFLICT, code, message)


def constraint(code: str, message: str, details: dict | None = None) -> AppError:
    return AppError(ErrorKind.CONSTRAINT, code, message, details)


def validation(code: str, message: str, details: dict | None = None) -> AppError:
    return AppError(ErrorKind.VALIDATION, code, message, details)


def _error_response(err: AppError, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=err.status_code,
        content={"success": False, "error": err.to_dict()},
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if exc.kind is ErrorKind.RATE_LIMITED and exc.details and "retryAfter" in exc.details:
        headers = {"Retry-After": str(exc.details["retryAfter"])}
    return _error_response(exc, headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ()) if p != "body"), "message": e.get("msg")}
        for e in exc.errors()
    ]
    return _error_response(validation("VALIDATION_ERROR", "Validation failed", {"errors": errors}))


async def store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Outages are not authentication failures; clients must not be told to log in again
    logger.error("Store unavailable on %s %s: %s: %s",
                 request.method, request.url.path, type(exc).__name__, exc)
    return _error_response(AppError(ErrorKind.UNAVAILABLE, "SERVICE_UNAVAILABLE",
                                    "Service temporarily unavailable"))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    # A unique constraint raced past an application-level existence check
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(conflict("DUPLICATE_RESOURCE", "Resource already exists"))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(AppError(ErrorKind.INTERNAL, "INTERNAL_ERROR",
                                    "An unexpected error occurred. Please try again later."))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(DBConnectionError, store_error_handler)
    app.add_exception_handler(OperationalError, store_error_handler)
    app.add_exception_handler(asyncio.TimeoutError, store_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
