"""FastAPI transport for SQLSentry.

Routes:
    GET  /api/health  -> {"ok": true}
    POST /api/ask     -> {question, strategy}; add ?trail=true for the audit trail
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sqlsentry.config import SentrySettings, configure_logging
from sqlsentry.core.engine import SQLSentry
from sqlsentry.core.types import AskRequest
from sqlsentry.exceptions import (
    ConfigurationError,
    ConnectionError,
    DeadlineExceededError,
    InputError,
    SQLSentryError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[SQLSentryError], int] = {
    InputError: 400,
    ConfigurationError: 500,
    ConnectionError: 500,
    DeadlineExceededError: 504,
}


def status_for(error: SQLSentryError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


def create_app(sentry: SQLSentry) -> FastAPI:
    """Build the HTTP app around one SQLSentry instance.

    The instance is shared by every request and closed on shutdown.

    Args:
        sentry: Configured SQLSentry (its database handle is opened on first use)

    Returns:
        FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        sentry.close()

    app = FastAPI(title="SQLSentry", lifespan=lifespan)
    app.state.sentry = sentry

    @app.middleware("http")
    async def log_timing(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start_time = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith("/api/"):
            elapsed = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} ({elapsed:.0f}ms)"
            )
        return response

    @app.exception_handler(SQLSentryError)
    async def handle_sentry_error(request: Request, exc: SQLSentryError) -> JSONResponse:
        return JSONResponse(status_code=status_for(exc), content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def handle_bad_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request body."})

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {"ok": True}

    @app.post("/api/ask")
    async def ask(payload: AskRequest | None = None, trail: bool = False) -> JSONResponse:
        payload = payload or AskRequest()
        result = await sentry.ask(payload.question, payload.strategy)
        return JSONResponse(
            status_code=result.status_code,
            content=jsonable_encoder(result.to_response(include_trail=trail)),
        )

    return app


def run(settings: SentrySettings | None = None) -> None:
    """Serve the app with uvicorn until interrupted."""
    import uvicorn

    settings = settings or SentrySettings.from_env()
    configure_logging(settings.log_level)
    sentry = SQLSentry(settings)
    # A missing database or API key stops startup.
    sentry.connection.test_connection()
    settings.require_api_key()

    logger.info(f"Listening on http://{settings.host}:{settings.port}")
    uvicorn.run(create_app(sentry), host=settings.host, port=settings.port)


def main() -> None:
    """Entry point for running the HTTP server."""
    run()


if __name__ == "__main__":
    main()
