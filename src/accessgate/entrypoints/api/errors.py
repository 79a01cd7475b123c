"""Mapping of accessgate errors to HTTP responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from accessgate.core.exceptions import AccessGateError, ErrorKind

logger = structlog.get_logger()

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.DUPLICATE_IDENTITY: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.INVALID_TOKEN: 401,
    ErrorKind.ACCOUNT_DISABLED: 403,
    ErrorKind.STORE_UNAVAILABLE: 503,
    ErrorKind.HASHING_FAILURE: 500,
}

# Kinds whose internal message is never shown to the caller.
_PUBLIC_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_TOKEN: "Invalid token",
    ErrorKind.STORE_UNAVAILABLE: "Service temporarily unavailable",
    ErrorKind.HASHING_FAILURE: "Internal error",
}


async def accessgate_error_handler(request: Request, exc: AccessGateError) -> JSONResponse:
    """Render an AccessGateError as JSON with a status derived from its kind."""
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, kind=exc.kind.value)
    else:
        logger.info("request_rejected", path=request.url.path, kind=exc.kind.value)

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": _PUBLIC_MESSAGES.get(exc.kind, exc.message),
            "kind": exc.kind.value,
        },
        headers=headers,
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the accessgate exception handler on an application."""
    app.exception_handler(AccessGateError)(accessgate_error_handler)
