from __future__ import annotations

from datetime import date
from typing import Protocol, Sequence

from invest_loader.contexts.ingestion.domain import Candle, Trade, TradingDay
from invest_loader.shared_kernel.primitives import CandleInterval, InstrumentId


class MarketDataSource(Protocol):
    """
    MarketDataSource — upstream market-data provider.

    Contract:
    - fetch_candles(instrument_id, day, interval) -> candles of the provider-local day
    - fetch_trading_schedule(exchange, start, end) -> one TradingDay per calendar day
    - fetch_last_trades(instrument_id, day) -> trades of the provider-local day

    Assumptions/Invariants:
    - Calls are blocking; callers run them through `asyncio.to_thread` under a gate permit.
    - An empty sequence means "no data", never an error.

    Errors/Exceptions:
    - `UpstreamFetchError` on network, timeout or remote failures.
    """

    def fetch_candles(
        self,
        instrument_id: InstrumentId,
        day: date,
        interval: CandleInterval,
    ) -> Sequence[Candle]:
        ...

    def fetch_trading_schedule(self, exchange: str, start: date, end: date) -> Sequence[TradingDay]:
        ...

    def fetch_last_trades(self, instrument_id: InstrumentId, day: date) -> Sequence[Trade]:
        ...
