"""FastAPI application wiring for the order bot.

This module bootstraps the HTTP surface the backend and Discord talk to:

- Configures logging, Prometheus metrics and rate limiting.
- Builds the :class:`~orderbot.orchestrator.Orchestrator` on startup, which
  registers slash commands and prepares the staff channels, and tears it
  down on shutdown.
- Exposes the order webhook, the Discord interactions endpoint, health and
  version routes.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .config import get_settings
from .orchestrator import Orchestrator
from .rate_limit import limiter
from .routers import interactions, webhooks

logger = logging.getLogger(__name__)


def create_app(orchestrator: Orchestrator | None = None) -> FastAPI:
    """Build the application; tests pass an orchestrator wired to fakes."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "orchestrator", None) is None:
            app.state.orchestrator = Orchestrator.from_settings(get_settings())
        current: Orchestrator = app.state.orchestrator
        logger.info("Starting order bot %s", __version__)
        await current.startup()
        try:
            yield
        finally:
            await current.shutdown()
            logger.info("Order bot stopped")

    app = FastAPI(title="Order Bot", version=__version__, lifespan=lifespan)
    app.state.orchestrator = orchestrator
    init_logging(app)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.include_router(webhooks.router)
    app.include_router(interactions.router)

    @app.get("/api/version")
    async def version():
        """Return version information for the application."""
        return {
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }

    return app


app = create_app()

# Expose Prometheus metrics
Instrumentator().instrument(app).expose(
    app, include_in_schema=False, endpoint="/api/metrics"
)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("orderbot.main:app", host="0.0.0.0", port=get_settings().port)


if __name__ == "__main__":  # pragma: no cover
    run()
