"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest
from starlette.responses import Response

from tx_manager import __version__
from tx_manager.api.middleware import SecurityHeadersMiddleware, setup_cors
from tx_manager.api.v1 import v1_router
from tx_manager.config.settings import AppConfig
from tx_manager.engine.client import TransactionEngine
from tx_manager.errors.tx_errors import TxManagerError
from tx_manager.metrics.collector import TransactionMetrics
from tx_manager.metrics.middleware import PrometheusMiddleware

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from tx_manager.engine.registry import ProcessorRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle hooks.

    Initialises the engine (manager, workers, maintenance jobs) on startup
    and gracefully shuts down on exit.
    """
    config: AppConfig = app.state.config
    engine = TransactionEngine(
        config,
        processors=app.state.processors,
        metrics=app.state.metrics,
    )

    try:
        await engine.initialize()
        app.state.engine = engine
        logger.info("Transaction engine ready")
        yield
    finally:
        await engine.close()
        app.state.engine = None
        logger.info("Transaction engine shut down")


def create_app(
    *,
    config: AppConfig | None = None,
    processors: ProcessorRegistry | Mapping[str, Any] | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        config: Optional AppConfig. If *None*, a default config is created
            from environment variables.
        processors: Processors by transaction type.  If *None* they are
            imported from ``config.manager.processors``.
    """
    if config is None:
        config = AppConfig()

    app = FastAPI(
        title="py-txmanager",
        version=__version__,
        description="Priority transaction queue with retries and live status",
        lifespan=_lifespan,
    )

    # Store config on app.state for lifespan access
    app.state.config = config
    app.state.processors = processors
    app.state.metrics = TransactionMetrics()
    app.state.engine = None

    # -- Middleware --
    setup_cors(app, config.server.allowed_origins)
    app.add_middleware(SecurityHeadersMiddleware)
    if config.metrics.enabled:
        app.add_middleware(PrometheusMiddleware, registry=app.state.metrics.registry)

    # -- Error handler --
    @app.exception_handler(TxManagerError)
    async def _txm_error_handler(request: Request, exc: TxManagerError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
        )

    # -- Base routes --
    @app.get("/health", tags=["base"])
    async def health() -> dict[str, str]:
        engine: TransactionEngine | None = app.state.engine
        if engine is None or not engine.is_initialized:
            return {"status": "starting"}
        return {"status": "ok"}

    @app.get("/metrics", tags=["base"], include_in_schema=False)
    async def metrics_endpoint() -> Response:
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_latest(app.state.metrics.registry),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    # -- Mount v1 API --
    app.include_router(v1_router)

    return app
