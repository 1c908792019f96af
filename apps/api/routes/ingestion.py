"""
Ingestion control API routes: manual trigger dispatch, task lookup, previews, gate stats.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Literal

from fastapi import APIRouter, Query

from apps.api.dto import (
    IngestionTaskResponse,
    RateLimitStatsResponse,
    SessionPricePreviewResponse,
    TriggerDispatchResponse,
    TriggersResponse,
    build_ingestion_task_response,
    build_rate_limit_stats_response,
    build_session_price_preview_response,
    build_trigger_dispatch_response,
)
from invest_loader.contexts.ingestion.application.ports.stores import TaskRegistry
from invest_loader.contexts.ingestion.application.services import (
    ConcurrencyGate,
    ScheduleCoordinator,
)
from invest_loader.contexts.ingestion.application.use_cases import DeriveSessionPricesUseCase
from invest_loader.platform.errors import InvestLoaderError

SessionKindQuery = Literal["morning_open", "main_close", "evening_close"]


def build_ingestion_router(
    *,
    coordinator: ScheduleCoordinator,
    registry: TaskRegistry,
    derive_use_case: DeriveSessionPricesUseCase,
    gate: ConcurrencyGate,
) -> APIRouter:
    """
    Build ingestion control API router.

    Related:
      - apps/api/dto/ingestion.py
      - apps/api/wiring/modules/ingestion.py
      - src/invest_loader/contexts/ingestion/application/services/schedule_coordinator.py

    Args:
        coordinator: Trigger coordinator used for background dispatch.
        registry: Task registry read by task lookups.
        derive_use_case: Session price use case serving previews.
        gate: Process-wide concurrency gate.
    Returns:
        APIRouter: Router with `/api/ingestion/*` endpoints.
    Assumptions:
        Business rules live in the coordinator and use cases; routes map transport only.
    Raises:
        ValueError: If one of required dependencies is missing.
    Side Effects:
        None.
    """
    if coordinator is None:  # type: ignore[truthy-bool]
        raise ValueError("build_ingestion_router requires coordinator")
    if registry is None:  # type: ignore[truthy-bool]
        raise ValueError("build_ingestion_router requires registry")
    if derive_use_case is None:  # type: ignore[truthy-bool]
        raise ValueError("build_ingestion_router requires derive_use_case")
    if gate is None:  # type: ignore[truthy-bool]
        raise ValueError("build_ingestion_router requires gate")

    router = APIRouter(prefix="/api/ingestion", tags=["ingestion"])

    @router.post(
        "/triggers/{trigger_name}",
        response_model=TriggerDispatchResponse,
        status_code=202,
    )
    async def post_trigger(
        trigger_name: str,
        run_date: date | None = Query(default=None, alias="date"),
    ) -> TriggerDispatchResponse:
        """
        Start one trigger in the background and return its task id.

        Args:
            trigger_name: Configured trigger name.
            run_date: Optional business date, trigger default when omitted.
        Returns:
            TriggerDispatchResponse: `{"taskId", "status": "STARTED"}`.
        Assumptions:
            The pipeline outcome is observable via `GET /api/ingestion/tasks/{task_id}`.
        Raises:
            UnknownTrigger: Mapped to 404.
            RequestValidationError: Malformed date, mapped to 422.
        Side Effects:
            Writes the task start record and schedules an asyncio task.
        """
        ack = await coordinator.dispatch(trigger_name, run_date)
        return build_trigger_dispatch_response(ack=ack)

    @router.get("/tasks/{task_id}", response_model=IngestionTaskResponse)
    async def get_task(task_id: str) -> IngestionTaskResponse:
        task = await asyncio.to_thread(registry.get, task_id)
        if task is None:
            raise InvestLoaderError(
                code="not_found",
                message=f"Unknown task: {task_id}",
                details={"task_id": task_id},
            )
        return build_ingestion_task_response(task=task)

    @router.get("/session-prices/preview", response_model=SessionPricePreviewResponse)
    async def get_session_price_preview(
        kind: SessionKindQuery = Query(...),
        preview_date: date = Query(..., alias="date"),
    ) -> SessionPricePreviewResponse:
        """
        Derive session prices of one date without persisting them.

        Args:
            kind: Session price kind.
            preview_date: Session calendar date.
        Returns:
            SessionPricePreviewResponse: Derived prices, empty on non-trading days.
        Assumptions:
            Minute candles of the date are already stored.
        Raises:
            RequestValidationError: Unknown kind or malformed date, mapped to 422.
        Side Effects:
            Candle window reads only.
        """
        prices = await derive_use_case.preview(preview_date, kind)
        return build_session_price_preview_response(prices=prices)

    @router.get("/rate-limit", response_model=RateLimitStatsResponse)
    async def get_rate_limit() -> RateLimitStatsResponse:
        return build_rate_limit_stats_response(stats=gate.stats())

    @router.get("/triggers", response_model=TriggersResponse)
    async def get_triggers() -> TriggersResponse:
        return TriggersResponse(items=list(coordinator.trigger_names()))

    return router


__all__ = ["build_ingestion_router"]
