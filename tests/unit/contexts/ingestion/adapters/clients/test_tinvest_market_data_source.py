from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Mapping

import pytest

from invest_loader.contexts.ingestion.adapters.outbound.clients.common_http import HttpResponse
from invest_loader.contexts.ingestion.adapters.outbound.clients.tinvest import (
    TInvestMarketDataSource,
    quotation_to_float,
)
from invest_loader.contexts.ingestion.adapters.outbound.config import TInvestConfig
from invest_loader.contexts.ingestion.domain import UpstreamFetchError
from invest_loader.shared_kernel.primitives import CandleInterval, InstrumentId, UtcTimestamp


class _FixedClock:
    def __init__(self, value: datetime) -> None:
        self._value = UtcTimestamp(value)

    def now(self) -> UtcTimestamp:
        return self._value


class _FakeHttp:
    """Returns queued JSON bodies and records every posted payload."""

    def __init__(self, bodies: list[Any]) -> None:
        self._bodies = list(bodies)
        self.calls: list[Mapping[str, Any]] = []

    def post_json(self, **kwargs: Any) -> HttpResponse:
        self.calls.append(kwargs)
        body = self._bodies.pop(0) if self._bodies else {}
        return HttpResponse(status_code=200, headers={}, body=body)


def _source(http: _FakeHttp, *, now: datetime | None = None) -> TInvestMarketDataSource:
    return TInvestMarketDataSource(
        cfg=TInvestConfig(base_url="https://gateway.test/rest/", retries=0),
        token="secret-token",
        http=http,
        clock=_FixedClock(now or datetime(2024, 5, 11, 12, 0, tzinfo=timezone.utc)),
    )


def _candle_item(ts: str, close_units: str) -> dict[str, Any]:
    return {
        "open": {"units": "300", "nano": 0},
        "high": {"units": "310", "nano": 0},
        "low": {"units": "299", "nano": 0},
        "close": {"units": close_units, "nano": 500000000},
        "volume": "42",
        "time": ts,
        "isComplete": True,
    }


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ({"units": "306", "nano": 500000000}, 306.5),
        ({"units": "-1", "nano": -250000000}, -1.25),
        ({"nano": 10000000}, 0.01),
    ],
)
def test_quotation_to_float(value: Mapping[str, Any], expected: float) -> None:
    assert quotation_to_float(value) == pytest.approx(expected)


def test_quotation_to_float_rejects_garbage() -> None:
    with pytest.raises(UpstreamFetchError):
        quotation_to_float({"units": "abc"})
    with pytest.raises(UpstreamFetchError):
        quotation_to_float(None)


def test_fetch_candles_requests_moscow_day_and_drops_rows_outside_it() -> None:
    http = _FakeHttp(
        [
            {
                "candles": [
                    _candle_item("2024-05-09T20:59:00Z", "301"),
                    _candle_item("2024-05-10T06:59:00.123456789Z", "302"),
                ]
            }
        ]
    )

    candles = _source(http).fetch_candles(
        InstrumentId("SBER"),
        date(2024, 5, 10),
        CandleInterval.minute(),
    )

    assert len(candles) == 1
    assert str(candles[0].ts) == "2024-05-10T06:59:00.123Z"
    assert candles[0].close == pytest.approx(302.5)
    assert candles[0].volume == 42
    call = http.calls[0]
    assert call["url"] == (
        "https://gateway.test/rest/"
        "tinkoff.public.invest.api.contract.v1.MarketDataService/GetCandles"
    )
    assert call["payload"] == {
        "instrumentId": "SBER",
        "from": "2024-05-09T21:00:00.000Z",
        "to": "2024-05-10T21:00:00.000Z",
        "interval": "CANDLE_INTERVAL_1_MIN",
    }
    assert call["headers"]["Authorization"] == "Bearer secret-token"
    assert call["retries"] == 0


def test_fetch_last_trades_uses_hourly_windows_capped_by_clock() -> None:
    trade = {
        "price": {"units": "300", "nano": 0},
        "quantity": "5",
        "direction": "TRADE_DIRECTION_SELL",
        "time": "2024-05-09T21:15:00Z",
    }
    http = _FakeHttp([{"trades": [trade]}, {}, {"trades": []}])
    source = _source(http, now=datetime(2024, 5, 9, 23, 30, tzinfo=timezone.utc))

    trades = source.fetch_last_trades(InstrumentId("SBER"), date(2024, 5, 10))

    assert [(call["payload"]["from"], call["payload"]["to"]) for call in http.calls] == [
        ("2024-05-09T21:00:00.000Z", "2024-05-09T22:00:00.000Z"),
        ("2024-05-09T22:00:00.000Z", "2024-05-09T23:00:00.000Z"),
        ("2024-05-09T23:00:00.000Z", "2024-05-09T23:30:00.000Z"),
    ]
    assert len(trades) == 1
    assert (trades[0].direction, trades[0].quantity, trades[0].exchange) == ("sell", 5, "MOEX")
    assert http.calls[0]["payload"]["tradeSource"] == "TRADE_SOURCE_ALL"


def test_fetch_last_trades_for_future_day_makes_no_calls() -> None:
    http = _FakeHttp([])
    source = _source(http, now=datetime(2024, 5, 9, 12, 0, tzinfo=timezone.utc))

    assert source.fetch_last_trades(InstrumentId("SBER"), date(2024, 5, 10)) == ()
    assert http.calls == []


def test_fetch_trading_schedule_maps_days() -> None:
    http = _FakeHttp(
        [
            {
                "exchanges": [
                    {
                        "exchange": "MOEX",
                        "days": [
                            {"date": "2024-05-09T00:00:00Z", "isTradingDay": False},
                            {"date": "2024-05-10T00:00:00Z", "isTradingDay": True},
                        ],
                    }
                ]
            }
        ]
    )

    days = _source(http).fetch_trading_schedule("MOEX", date(2024, 5, 9), date(2024, 5, 10))

    assert [(item.day, item.is_trading_day) for item in days] == [
        (date(2024, 5, 9), False),
        (date(2024, 5, 10), True),
    ]


def test_unexpected_payload_shapes_raise_upstream_error() -> None:
    with pytest.raises(UpstreamFetchError, match="payload type"):
        _source(_FakeHttp([["not", "a", "mapping"]])).fetch_candles(
            InstrumentId("SBER"),
            date(2024, 5, 10),
            CandleInterval.day(),
        )
    with pytest.raises(UpstreamFetchError, match="Invalid candle item"):
        _source(_FakeHttp([{"candles": [{"close": {}}]}])).fetch_candles(
            InstrumentId("SBER"),
            date(2024, 5, 10),
            CandleInterval.day(),
        )


def test_source_requires_token() -> None:
    with pytest.raises(ValueError, match="token"):
        TInvestMarketDataSource(
            cfg=TInvestConfig(),
            token="  ",
            http=_FakeHttp([]),
            clock=_FixedClock(datetime(2024, 5, 10, tzinfo=timezone.utc)),
        )
