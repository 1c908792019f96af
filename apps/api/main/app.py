"""
FastAPI application factory for the ingestion control API.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping

from fastapi import FastAPI
from prometheus_client import make_asgi_app

from apps.api.common import register_api_error_handlers
from apps.api.wiring.modules import build_ingestion_api_module


def create_app(*, environ: Mapping[str, str] | None = None) -> FastAPI:
    """
    Build FastAPI app with the ingestion module wired at startup.

    The app is the single host of the ingestion runtime: cron jobs run inside its lifespan
    and share the concurrency gate and coordinator with `/api/ingestion/*` dispatches.

    Related: apps.api.routes.ingestion,
      apps.api.wiring.modules.ingestion,
      apps.scheduler.ingestion_scheduler.wiring.modules.ingestion_runtime

    Args:
        environ: Optional environment mapping override.
    Returns:
        FastAPI: Application instance with registered routers and `/metrics`.
    Assumptions:
        Module wiring performs fail-fast validation before first request.
    Raises:
        FileNotFoundError: If ingestion config path is missing.
        ValueError: If config parsing/validation fails or required secrets are absent.
    Side Effects:
        Reads ingestion YAML config; the lifespan starts and stops cron jobs.
    """
    effective_environ = os.environ if environ is None else environ
    ingestion_module = build_ingestion_api_module(environ=effective_environ)

    @asynccontextmanager
    async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
        ingestion_module.scheduler.start()
        try:
            yield
        finally:
            await ingestion_module.scheduler.stop()

    app = FastAPI(
        title="Invest Loader API",
        version="1.0.0",
        lifespan=_lifespan,
    )
    app.state.ingestion = ingestion_module
    register_api_error_handlers(app=app)
    app.include_router(ingestion_module.router)
    app.mount("/metrics", make_asgi_app(registry=ingestion_module.metrics_registry))
    return app


app = create_app()
