# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details


"""
FastAPI application shell.

Holds a SessionEngine on app.state, installs error mapping, and exposes
Prometheus metrics. Auth routes are mounted by the embedding
application.
"""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response

from ..auth.engine import SessionEngine
from ..observability.logging import clear_request_context, set_request_context
from .errors import register_error_handlers

logger = logging.getLogger(__name__)


def create_app(engine: SessionEngine, close_on_shutdown: bool = True) -> FastAPI:
    """Create the FastAPI app around an already-built SessionEngine."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Turnstile gateway starting")
        yield
        if close_on_shutdown:
            await engine.close()
        logger.info("Turnstile gateway stopped")

    app = FastAPI(
        title=engine.settings.app_name,
        version=engine.settings.app_version,
        docs_url="/docs" if engine.settings.is_development else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.session_engine = engine

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response

    register_error_handlers(app)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(
            content=engine.metrics.generate_latest(),
            media_type=engine.metrics.content_type(),
        )

    return app


__all__ = ["create_app"]
