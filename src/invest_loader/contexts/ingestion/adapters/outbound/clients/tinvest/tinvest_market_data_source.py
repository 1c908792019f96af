from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterator, Mapping, Sequence

from invest_loader.contexts.ingestion.adapters.outbound.clients.common_http import HttpClient
from invest_loader.contexts.ingestion.adapters.outbound.config.runtime_config import (
    TInvestConfig,
)
from invest_loader.contexts.ingestion.application.ports.clock import Clock
from invest_loader.contexts.ingestion.application.ports.sources import MarketDataSource
from invest_loader.contexts.ingestion.domain import (
    Candle,
    Trade,
    TradingDay,
    UpstreamFetchError,
)
from invest_loader.shared_kernel.primitives import (
    CandleInterval,
    InstrumentId,
    TimeRange,
    UtcTimestamp,
)

log = logging.getLogger(__name__)

_CONTRACT_PREFIX = "tinkoff.public.invest.api.contract.v1"
_GET_CANDLES = "MarketDataService/GetCandles"
_GET_LAST_TRADES = "MarketDataService/GetLastTrades"
_TRADING_SCHEDULES = "InstrumentsService/TradingSchedules"

# GetLastTrades accepts at most one hour per request.
_LAST_TRADES_WINDOW = timedelta(hours=1)

_TRADE_DIRECTIONS = {
    "TRADE_DIRECTION_BUY": "buy",
    "TRADE_DIRECTION_SELL": "sell",
}

_FRACTION_RE = re.compile(r"\.(\d+)")


@dataclass(frozen=True, slots=True)
class TInvestMarketDataSource(MarketDataSource):
    """
    MarketDataSource over the T-Invest REST gateway (JSON over POST).

    Important:
    - every day window is `[local midnight, next local midnight)` in `tz_name`
    - prices arrive as `Quotation {units, nano}` and are mapped to `units + nano * 1e-9`
    - trades are requested in one-hour windows, never past `clock.now()`
    - every transport or payload failure surfaces as `UpstreamFetchError`
    """

    cfg: TInvestConfig
    token: str
    http: HttpClient
    clock: Clock
    exchange: str = "MOEX"
    tz_name: str = "Europe/Moscow"

    def __post_init__(self) -> None:
        if not self.token.strip():
            raise ValueError("TInvestMarketDataSource requires non-empty token")

    def fetch_candles(
        self,
        instrument_id: InstrumentId,
        day: date,
        interval: CandleInterval,
    ) -> Sequence[Candle]:
        window = TimeRange.local_day(day, self.tz_name)
        body = self._call(
            _GET_CANDLES,
            {
                "instrumentId": instrument_id.value,
                "from": str(window.start),
                "to": str(window.end),
                "interval": interval.wire_name,
            },
        )
        candles = []
        for item in _get_list(body, "candles"):
            candle = _map_candle(instrument_id=instrument_id, interval=interval, item=item)
            if window.contains(candle.ts):
                candles.append(candle)
        log.debug("GetCandles %s %s %s -> %s rows", instrument_id, day, interval, len(candles))
        return tuple(candles)

    def fetch_trading_schedule(self, exchange: str, start: date, end: date) -> Sequence[TradingDay]:
        if end < start:
            raise ValueError(f"schedule end {end} is before start {start}")
        body = self._call(
            _TRADING_SCHEDULES,
            {
                "exchange": exchange,
                "from": str(TimeRange.local_day(start, self.tz_name).start),
                "to": str(TimeRange.local_day(end, self.tz_name).end),
            },
        )
        days: list[TradingDay] = []
        for schedule in _get_list(body, "exchanges"):
            if not isinstance(schedule, Mapping):
                raise UpstreamFetchError(f"Invalid trading schedule item: {schedule!r}")
            for item in _get_list(schedule, "days"):
                if not isinstance(item, Mapping) or "date" not in item:
                    raise UpstreamFetchError(f"Invalid trading day item: {item!r}")
                days.append(
                    TradingDay(
                        exchange=str(schedule.get("exchange") or exchange),
                        day=_parse_time(str(item["date"])).date(),
                        is_trading_day=bool(item.get("isTradingDay", False)),
                    )
                )
        return tuple(days)

    def fetch_last_trades(self, instrument_id: InstrumentId, day: date) -> Sequence[Trade]:
        trades: list[Trade] = []
        for window in self._trade_windows(day):
            body = self._call(
                _GET_LAST_TRADES,
                {
                    "instrumentId": instrument_id.value,
                    "from": str(window.start),
                    "to": str(window.end),
                    "tradeSource": self.cfg.trade_source,
                },
            )
            trades.extend(
                _map_trade(instrument_id=instrument_id, exchange=self.exchange, item=item)
                for item in _get_list(body, "trades")
            )
        return tuple(trades)

    def _trade_windows(self, day: date) -> Iterator[TimeRange]:
        window = TimeRange.local_day(day, self.tz_name)
        end = min(window.end.value, self.clock.now().value)
        cursor = window.start.value
        while cursor < end:
            window_end = min(end, cursor + _LAST_TRADES_WINDOW)
            yield TimeRange(start=UtcTimestamp(cursor), end=UtcTimestamp(window_end))
            cursor = window_end

    def _call(self, method: str, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        url = f"{self.cfg.base_url.rstrip('/')}/{_CONTRACT_PREFIX}.{method}"
        resp = self.http.post_json(
            url=url,
            payload=payload,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/json",
            },
            timeout_s=self.cfg.timeout_s,
            retries=self.cfg.retries,
            backoff_base_s=self.cfg.backoff.base_s,
            backoff_max_s=self.cfg.backoff.max_s,
            backoff_jitter_s=self.cfg.backoff.jitter_s,
        )
        body = resp.body
        if not isinstance(body, Mapping):
            raise UpstreamFetchError(
                f"Unexpected {method} payload type: {type(body).__name__}",
                details={"method": method},
            )
        return body


def quotation_to_float(value: Any) -> float:
    """
    Convert a T-Invest `Quotation`/`MoneyValue` mapping to float.

    `units` arrives as a string-encoded int64, `nano` as int in `(-1e9, 1e9)`.
    """
    if not isinstance(value, Mapping):
        raise UpstreamFetchError(f"Invalid quotation: {value!r}")
    try:
        units = int(value.get("units", 0) or 0)
        nano = int(value.get("nano", 0) or 0)
    except (TypeError, ValueError) as e:
        raise UpstreamFetchError(f"Invalid quotation: {value!r}") from e
    return units + nano * 1e-9


def _map_candle(*, instrument_id: InstrumentId, interval: CandleInterval, item: Any) -> Candle:
    # {"open": {...}, "high": {...}, "low": {...}, "close": {...},
    #  "volume": "123", "time": "2024-05-10T06:59:00Z", "isComplete": true}
    if not isinstance(item, Mapping) or "time" not in item:
        raise UpstreamFetchError(f"Invalid candle item: {item!r}")
    try:
        volume = int(item.get("volume", 0) or 0)
    except (TypeError, ValueError) as e:
        raise UpstreamFetchError(f"Invalid candle volume: {item!r}") from e
    return Candle(
        instrument_id=instrument_id,
        ts=UtcTimestamp(_parse_time(str(item["time"]))),
        interval=interval,
        open=quotation_to_float(item.get("open")),
        high=quotation_to_float(item.get("high")),
        low=quotation_to_float(item.get("low")),
        close=quotation_to_float(item.get("close")),
        volume=volume,
        is_complete=bool(item.get("isComplete", False)),
    )


def _map_trade(*, instrument_id: InstrumentId, exchange: str, item: Any) -> Trade:
    if not isinstance(item, Mapping) or "time" not in item:
        raise UpstreamFetchError(f"Invalid trade item: {item!r}")
    try:
        quantity = int(item.get("quantity", 0) or 0)
    except (TypeError, ValueError) as e:
        raise UpstreamFetchError(f"Invalid trade quantity: {item!r}") from e
    direction = _TRADE_DIRECTIONS.get(str(item.get("direction", "")), "unspecified")
    return Trade(
        instrument_id=instrument_id,
        ts=UtcTimestamp(_parse_time(str(item["time"]))),
        price=quotation_to_float(item.get("price")),
        quantity=quantity,
        direction=direction,  # type: ignore[arg-type]
        exchange=exchange,
    )


def _parse_time(raw: str) -> datetime:
    # protobuf JSON timestamps carry up to nanosecond precision
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), raw.strip(), count=1)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError as e:
        raise UpstreamFetchError(f"Invalid timestamp: {raw!r}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _get_list(d: Mapping[str, Any], key: str) -> list[Any]:
    v = d.get(key)
    if v is None:
        return []
    if not isinstance(v, list):
        raise UpstreamFetchError(f"expected list at key '{key}', got {type(v).__name__}")
    return v
