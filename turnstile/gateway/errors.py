# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details


"""
Error mapping at the HTTP boundary.

Engine exceptions carry an ErrorKind; this is the only place that turns
a kind into a status code. Refresh rejections are rendered from the
exception's public fields only, so the internal failure reason never
reaches the client.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from turnstile_core.exceptions import ErrorKind, TurnstileError, UnauthorizedError

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: TurnstileError) -> int:
    return STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_response(exc: TurnstileError, request_id: str | None = None) -> JSONResponse:
    """Render an engine exception as a JSON response."""
    status_code = status_for(exc)
    if status_code >= 500:
        # Internal details stay in the log
        content = {"error": "Internal server error", "status_code": status_code}
    else:
        content = {"error": exc.message, "status_code": status_code}
    content["request_id"] = request_id

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    """Install the TurnstileError handler on an app."""

    @app.exception_handler(TurnstileError)
    async def turnstile_error_handler(request: Request, exc: TurnstileError):
        request_id = getattr(request.state, "request_id", None)
        if exc.kind is ErrorKind.INTERNAL:
            logger.error("Engine error on %s: %s", request.url.path, exc.message)
        else:
            logger.info(
                "%s on %s: %s", exc.__class__.__name__, request.url.path, exc.kind.value
            )
        return error_response(exc, request_id)


__all__ = [
    "STATUS_BY_KIND",
    "status_for",
    "error_response",
    "register_error_handlers",
]
