from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Sequence

from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from apps.api.common import register_api_error_handlers
from apps.api.wiring.modules import build_ingestion_router_for_runtime
from apps.scheduler.ingestion_scheduler.wiring.modules import (
    IngestionMetrics,
    IngestionRuntime,
    IngestionStorage,
    build_ingestion_runtime,
)
from invest_loader.contexts.ingestion.adapters.outbound.config import (
    load_ingestion_runtime_config,
)
from invest_loader.contexts.ingestion.adapters.outbound.persistence import (
    InMemoryAggregationRefresher,
    InMemoryCandleStore,
    InMemoryInstrumentReader,
    InMemorySessionPriceStore,
    InMemoryTaskRegistry,
    InMemoryTradeStore,
)
from invest_loader.contexts.ingestion.domain import Candle, Instrument, Trade, TradingDay
from invest_loader.shared_kernel.primitives import CandleInterval, InstrumentId, UtcTimestamp

_REPO_ROOT = Path(__file__).resolve().parents[4]


class _FixedClock:
    def now(self) -> UtcTimestamp:
        return UtcTimestamp(datetime(2024, 5, 10, 22, 10, tzinfo=timezone.utc))


class _FakeSource:
    """Serves one complete minute candle per instrument and day."""

    def fetch_candles(
        self,
        instrument_id: InstrumentId,
        day: date,
        interval: CandleInterval,
    ) -> Sequence[Candle]:
        return (
            Candle(
                instrument_id=instrument_id,
                ts=UtcTimestamp(datetime(day.year, day.month, day.day, 7, 0, tzinfo=timezone.utc)),
                interval=interval,
                open=100.0,
                high=101.0,
                low=99.0,
                close=100.5,
                volume=5,
                is_complete=True,
            ),
        )

    def fetch_trading_schedule(self, exchange: str, start: date, end: date) -> Sequence[TradingDay]:
        return ()

    def fetch_last_trades(self, instrument_id: InstrumentId, day: date) -> Sequence[Trade]:
        return ()


def _minute_candle(value: str, hour: int, minute: int, close: float) -> Candle:
    return Candle(
        instrument_id=InstrumentId(value),
        ts=UtcTimestamp(datetime(2024, 5, 10, hour, minute, tzinfo=timezone.utc)),
        interval=CandleInterval.minute(),
        open=close,
        high=close,
        low=close,
        close=close,
        volume=1,
        is_complete=True,
    )


def _build_runtime() -> tuple[IngestionRuntime, InMemoryCandleStore]:
    candles = InMemoryCandleStore()
    candles.put_if_absent(_minute_candle("SBER", 15, 59, 306.0))
    candles.put_if_absent(_minute_candle("GAZP", 15, 58, 171.2))
    storage = IngestionStorage(
        candles=candles,
        session_prices=InMemorySessionPriceStore(),
        trades=InMemoryTradeStore(),
        instruments=InMemoryInstrumentReader(
            [
                Instrument(InstrumentId("SBER"), "SBER", "share", "RUB", "MOEX"),
                Instrument(InstrumentId("GAZP"), "GAZP", "share", "RUB", "MOEX"),
            ]
        ),
        registry=InMemoryTaskRegistry(),
        refresher=InMemoryAggregationRefresher(),
    )
    runtime = build_ingestion_runtime(
        config=load_ingestion_runtime_config(_REPO_ROOT / "configs" / "test" / "ingestion.yaml"),
        environ={},
        metrics=IngestionMetrics(registry=CollectorRegistry()),
        source=_FakeSource(),
        storage=storage,
        clock=_FixedClock(),
    )
    return runtime, candles


def _build_app(runtime: IngestionRuntime) -> FastAPI:
    @asynccontextmanager
    async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        await runtime.coordinator.wait_idle()

    app = FastAPI(lifespan=_lifespan)
    register_api_error_handlers(app=app)
    app.include_router(build_ingestion_router_for_runtime(runtime=runtime))
    return app


def test_post_trigger_dispatches_in_background_and_records_outcome() -> None:
    runtime, candles = _build_runtime()

    with TestClient(_build_app(runtime)) as client:
        response = client.post("/api/ingestion/triggers/candles", params={"date": "2024-05-09"})

    assert response.status_code == 202
    payload = response.json()
    assert payload["status"] == "STARTED"
    assert payload["taskId"].startswith("CANDLES_")

    task = runtime.registry.get(payload["taskId"])
    assert task is not None
    assert task.status == "COMPLETED"
    assert task.stage_name == "candles"
    # two seeded candles plus one minute and one daily candle per instrument
    assert len(candles.all_candles()) == 6


def test_get_task_returns_camel_case_snapshot() -> None:
    runtime, _ = _build_runtime()
    with TestClient(_build_app(runtime)) as client:
        task_id = client.post("/api/ingestion/triggers/aggregation_today").json()["taskId"]

    with TestClient(_build_app(runtime)) as client:
        response = client.get(f"/api/ingestion/tasks/{task_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["taskId"] == task_id
    assert body["stageName"] == "aggregation_today"
    assert body["status"] == "COMPLETED"
    assert body["message"] == "volume aggregation refreshed: today"
    assert body["durationMs"] >= 0


def test_unknown_trigger_and_task_map_to_not_found() -> None:
    runtime, _ = _build_runtime()

    with TestClient(_build_app(runtime)) as client:
        trigger_response = client.post("/api/ingestion/triggers/nightly")
        task_response = client.get("/api/ingestion/tasks/MISSING_1")

    assert trigger_response.status_code == 404
    assert trigger_response.json()["error"]["code"] == "not_found"
    assert task_response.status_code == 404
    assert task_response.json()["error"]["details"] == {"task_id": "MISSING_1"}


def test_malformed_date_is_validation_error() -> None:
    runtime, _ = _build_runtime()

    with TestClient(_build_app(runtime)) as client:
        response = client.post("/api/ingestion/triggers/candles", params={"date": "10.05.2024"})

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "validation_error"
    assert error["details"]["errors"][0]["path"] == "query.date"


def test_session_price_preview_derives_without_persisting() -> None:
    runtime, _ = _build_runtime()

    with TestClient(_build_app(runtime)) as client:
        response = client.get(
            "/api/ingestion/session-prices/preview",
            params={"kind": "main_close", "date": "2024-05-10"},
        )
        weekend = client.get(
            "/api/ingestion/session-prices/preview",
            params={"kind": "main_close", "date": "2024-05-11"},
        )
        bad_kind = client.get(
            "/api/ingestion/session-prices/preview",
            params={"kind": "auction", "date": "2024-05-10"},
        )

    assert response.status_code == 200
    items = response.json()["items"]
    assert [(item["instrumentId"], item["price"]) for item in items] == [
        ("GAZP", 171.2),
        ("SBER", 306.0),
    ]
    assert items[0]["kind"] == "main_close"
    assert items[0]["tradeDate"] == "2024-05-10"
    assert weekend.json() == {"items": []}
    assert bad_kind.status_code == 422


def test_rate_limit_and_triggers_endpoints() -> None:
    runtime, _ = _build_runtime()

    with TestClient(_build_app(runtime)) as client:
        stats = client.get("/api/ingestion/rate-limit")
        triggers = client.get("/api/ingestion/triggers")

    assert stats.json() == {
        "maxPermits": 5,
        "usedPermits": 0,
        "availablePermits": 5,
        "activeOperationClasses": [],
    }
    assert triggers.json()["items"][0] == "candles"
    assert len(triggers.json()["items"]) == 7
