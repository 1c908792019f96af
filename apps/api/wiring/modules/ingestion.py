from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from fastapi import APIRouter
from prometheus_client import CollectorRegistry

from apps.api.routes import build_ingestion_router
from apps.scheduler.ingestion_scheduler.wiring.modules import (
    IngestionMetrics,
    IngestionRuntime,
    IngestionSchedulerApp,
    build_ingestion_runtime,
)
from invest_loader.contexts.ingestion.adapters.outbound.config import (
    load_ingestion_runtime_config,
    resolve_ingestion_config_path,
)


@dataclass(frozen=True, slots=True)
class IngestionApiModule:
    """
    Ingestion API wiring result.

    Parameters:
    - router: `/api/ingestion/*` router.
    - runtime: the single object graph of the process.
    - scheduler: cron host over the same runtime, started by the app lifespan.
    - metrics_registry: Prometheus registry exposed under `/metrics`.

    Assumptions/Invariants:
    - Manual dispatches and cron runs share one gate and one coordinator, so the upstream
      permit limit and `after` ordering hold across both.
    """

    router: APIRouter
    runtime: IngestionRuntime
    scheduler: IngestionSchedulerApp
    metrics_registry: CollectorRegistry


def build_ingestion_api_module(*, environ: Mapping[str, str]) -> IngestionApiModule:
    """
    Build fully wired ingestion API module from runtime settings.

    Args:
        environ: Runtime environment mapping.
    Returns:
        IngestionApiModule: Router, runtime, cron host and metrics registry.
    Assumptions:
        Every app instance owns its metrics registry, so repeated app construction in one
        process does not collide on metric names.
    Raises:
        FileNotFoundError: If `ingestion.yaml` is missing.
        ValueError: If config or environment settings are invalid.
    Side Effects:
        Reads runtime YAML config.
    """
    config = load_ingestion_runtime_config(resolve_ingestion_config_path(environ=environ))
    metrics_registry = CollectorRegistry()
    runtime = build_ingestion_runtime(
        config=config,
        environ=environ,
        metrics=IngestionMetrics(registry=metrics_registry),
    )
    return IngestionApiModule(
        router=build_ingestion_router_for_runtime(runtime=runtime),
        runtime=runtime,
        scheduler=IngestionSchedulerApp(runtime=runtime),
        metrics_registry=metrics_registry,
    )


def build_ingestion_router_for_runtime(*, runtime: IngestionRuntime) -> APIRouter:
    return build_ingestion_router(
        coordinator=runtime.coordinator,
        registry=runtime.registry,
        derive_use_case=runtime.derive_use_case,
        gate=runtime.gate,
    )
