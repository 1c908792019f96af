from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from typing import Sequence

from invest_loader.contexts.ingestion.adapters.outbound.persistence import (
    InMemoryAggregationRefresher,
    InMemoryInstrumentReader,
    InMemoryTradeStore,
)
from invest_loader.contexts.ingestion.application.services import (
    ConcurrencyGate,
    FetchOrchestrator,
)
from invest_loader.contexts.ingestion.application.use_cases import (
    LoadLastTradesUseCase,
    RefreshVolumeAggregationUseCase,
)
from invest_loader.contexts.ingestion.domain import (
    Candle,
    Instrument,
    InstrumentClass,
    Trade,
    TradingDay,
)
from invest_loader.shared_kernel.primitives import CandleInterval, InstrumentId, UtcTimestamp


class _TradesSource:
    def __init__(self, trades: dict[str, Sequence[Trade]]) -> None:
        self._trades = trades
        self.requested: list[str] = []

    def fetch_candles(
        self,
        instrument_id: InstrumentId,
        day: date,
        interval: CandleInterval,
    ) -> Sequence[Candle]:
        return ()

    def fetch_trading_schedule(self, exchange: str, start: date, end: date) -> Sequence[TradingDay]:
        return ()

    def fetch_last_trades(self, instrument_id: InstrumentId, day: date) -> Sequence[Trade]:
        self.requested.append(instrument_id.value)
        return tuple(self._trades.get(instrument_id.value, ()))


def _instrument(value: str, instrument_class: InstrumentClass) -> Instrument:
    return Instrument(
        instrument_id=InstrumentId(value),
        ticker=value,
        instrument_class=instrument_class,
        currency="RUB",
        exchange="MOEX",
    )


def _trade(value: str, minute: int, *, price: float = 300.5) -> Trade:
    return Trade(
        instrument_id=InstrumentId(value),
        ts=UtcTimestamp(datetime(2024, 5, 10, 7, minute, tzinfo=timezone.utc)),
        price=price,
        quantity=3,
        direction="buy",
        exchange="MOEX",
    )


def _use_case(source: _TradesSource, store: InMemoryTradeStore) -> LoadLastTradesUseCase:
    return LoadLastTradesUseCase(
        source=source,
        instruments=InMemoryInstrumentReader(
            [
                _instrument("SBER", "share"),
                _instrument("SiM4", "future"),
                _instrument("IMOEX", "indicative"),
            ]
        ),
        store=store,
        orchestrator=FetchOrchestrator(gate=ConcurrencyGate(max_permits=2, min_interval_s=0.0)),
    )


def test_last_trades_are_loaded_for_shares_and_futures_only() -> None:
    source = _TradesSource({"SBER": [_trade("SBER", 1), _trade("SBER", 2)]})
    store = InMemoryTradeStore()

    report = asyncio.run(_use_case(source, store).run(date(2024, 5, 10)))

    assert sorted(source.requested) == ["SBER", "SiM4"]
    assert report.summary.processed == 2
    assert report.summary.inserted == 2
    assert report.summary.no_data == 1
    assert len(store.all_trades()) == 2


def test_repolled_trades_are_skipped_and_bad_prices_filtered() -> None:
    source = _TradesSource(
        {"SBER": [_trade("SBER", 1), _trade("SBER", 2, price=0.0)]},
    )
    store = InMemoryTradeStore()
    use_case = _use_case(source, store)

    asyncio.run(use_case.run(date(2024, 5, 10)))
    second = asyncio.run(use_case.run(date(2024, 5, 10)))

    assert second.summary.inserted == 0
    assert second.summary.skipped_existing == 1
    assert second.summary.invalid_filtered == 1
    assert "last trades 2024-05-10" in second.describe()


def test_refresh_use_case_delegates_to_refresher() -> None:
    refresher = InMemoryAggregationRefresher()
    use_case = RefreshVolumeAggregationUseCase(refresher=refresher)

    today = asyncio.run(use_case.refresh_today())
    asyncio.run(use_case.refresh_today())
    full = asyncio.run(use_case.refresh_full())

    assert (refresher.today_refreshes, refresher.full_refreshes) == (2, 1)
    assert today.describe() == "volume aggregation refreshed: today"
    assert full.scope == "full"
