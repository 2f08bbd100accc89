"""
Tribunal Worker API

FastAPI worker the submission web app calls for demo parsing and inventory
valuation.

This package exposes:
- create_app: application factory (tests inject their own stores and valuator)
- app: the default application (used by uvicorn and ``tribunal serve``)
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from tribunal import __version__
from tribunal.core.config import TribunalConfig, get_config
from tribunal.infra.cache import StatisticsCache
from tribunal.infra.database import DatabaseManager
from tribunal.pricing.valuation import InventoryValuator

logger = logging.getLogger(__name__)


def create_app(
    config: TribunalConfig | None = None,
    db: DatabaseManager | None = None,
    valuator: InventoryValuator | None = None,
    statistics_cache: StatisticsCache | None = None,
) -> FastAPI:
    """
    Build the worker application.

    Anything not injected is created at startup from ``config`` and torn down
    at shutdown; the HTTP client and bulk price snapshot live as long as the
    application does.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state = app.state
        cfg: TribunalConfig = state.config
        client: httpx.AsyncClient | None = None

        if state.db is None:
            state.db = DatabaseManager(cfg.resolved_database_url())
        if state.valuator is None:
            client = httpx.AsyncClient(follow_redirects=True)
            state.valuator = InventoryValuator.from_config(cfg, client, db=state.db)
        if state.statistics_cache is None and cfg.parser.cache_statistics:
            state.statistics_cache = StatisticsCache(cfg.resolved_results_dir())

        logger.info(f"Tribunal worker {__version__} ready")
        try:
            yield
        finally:
            await state.valuator.price_cache.drain()
            if client is not None:
                await client.aclose()

    app = FastAPI(
        title="Tribunal Worker",
        description="CS2 demo parsing and inventory valuation for cheater reports",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config or get_config()
    app.state.db = db
    app.state.valuator = valuator
    app.state.statistics_cache = statistics_cache

    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler to prevent information disclosure."""
        logger.exception(f"Unhandled exception for {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": "An unexpected error occurred. Please try again later.",
            },
        )

    from tribunal.api.routes_demo import router as demo_router
    from tribunal.api.routes_inventory import router as inventory_router
    from tribunal.api.routes_misc import router as misc_router

    app.include_router(misc_router)
    app.include_router(demo_router)
    app.include_router(inventory_router)
    return app


def __getattr__(name):
    """Build the default app on first access so importing the package stays cheap."""
    if name == "app":
        global app
        app = create_app()
        return app
    raise AttributeError(f"module 'tribunal.api' has no attribute '{name}'")
