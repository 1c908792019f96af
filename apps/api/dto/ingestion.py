"""
Pydantic API models and converters for ingestion control endpoints.

Payload keys are camelCase (`taskId`, `startedAt`, ...).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Sequence

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from invest_loader.contexts.ingestion.application.dto import DispatchAck, GateStats
from invest_loader.contexts.ingestion.domain import IngestionTask, SessionPrice


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TriggerDispatchResponse(_CamelModel):
    """
    API response for `POST /api/ingestion/triggers/{trigger_name}`.

    Related:
      - apps/api/routes/ingestion.py
      - src/invest_loader/contexts/ingestion/application/services/schedule_coordinator.py
    """

    task_id: str
    status: str


class IngestionTaskResponse(_CamelModel):
    """
    API response for `GET /api/ingestion/tasks/{task_id}`.

    Related:
      - apps/api/routes/ingestion.py
      - src/invest_loader/contexts/ingestion/domain/entities/ingestion_task.py
    """

    task_id: str
    stage_name: str
    status: str
    started_at: datetime
    ended_at: datetime | None = None
    message: str | None = None
    duration_ms: int | None = None


class SessionPriceItemResponse(_CamelModel):
    instrument_id: str
    trade_date: date
    kind: str
    price: float
    currency: str
    exchange: str
    instrument_class: str


class SessionPricePreviewResponse(_CamelModel):
    items: list[SessionPriceItemResponse]


class RateLimitStatsResponse(_CamelModel):
    max_permits: int
    used_permits: int
    available_permits: int
    active_operation_classes: list[str]


class TriggersResponse(_CamelModel):
    items: list[str]


def build_trigger_dispatch_response(*, ack: DispatchAck) -> TriggerDispatchResponse:
    return TriggerDispatchResponse(task_id=ack.task_id, status=ack.status)


def build_ingestion_task_response(*, task: IngestionTask) -> IngestionTaskResponse:
    return IngestionTaskResponse(
        task_id=task.task_id,
        stage_name=task.stage_name,
        status=task.status,
        started_at=task.started_at,
        ended_at=task.ended_at,
        message=task.message,
        duration_ms=task.duration_ms,
    )


def build_session_price_preview_response(
    *,
    prices: Sequence[SessionPrice],
) -> SessionPricePreviewResponse:
    """
    Convert derived session prices into API response payload.

    Parameters:
    - prices: derived, not persisted, session prices.

    Returns:
    - `SessionPricePreviewResponse` ordered by instrument id.

    Assumptions/Invariants:
    - Every price is > 0; the domain entity rejects anything else.

    Errors/Exceptions:
    - None.

    Side effects:
    - None.
    """
    ordered = sorted(prices, key=lambda price: price.instrument_id.value)
    return SessionPricePreviewResponse(
        items=[
            SessionPriceItemResponse(
                instrument_id=price.instrument_id.value,
                trade_date=price.trade_date,
                kind=price.kind,
                price=price.price,
                currency=price.currency,
                exchange=price.exchange,
                instrument_class=price.instrument_class,
            )
            for price in ordered
        ]
    )


def build_rate_limit_stats_response(*, stats: GateStats) -> RateLimitStatsResponse:
    return RateLimitStatsResponse(
        max_permits=stats.max_permits,
        used_permits=stats.used_permits,
        available_permits=stats.available_permits,
        active_operation_classes=list(stats.active_operation_classes),
    )
