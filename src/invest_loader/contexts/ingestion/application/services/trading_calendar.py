from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Protocol

from invest_loader.contexts.ingestion.application.ports.sources import MarketDataSource

from .concurrency_gate import ConcurrencyGate

log = logging.getLogger(__name__)

_SCHEDULE_OPERATION_CLASS = "trading_schedule"


class TradingCalendar(Protocol):
    """
    TradingCalendar — answers "does the exchange run sessions on this date".

    Contract:
    - await is_trading_day(day) -> bool
    """

    async def is_trading_day(self, day: date) -> bool:
        ...


class WeekendTradingCalendar:
    """Monday-Friday calendar without holiday knowledge."""

    async def is_trading_day(self, day: date) -> bool:
        return day.weekday() < 5


class ExchangeTradingCalendar:
    """
    Calendar backed by the provider trading schedule of one exchange.

    Parameters:
    - source: upstream provider.
    - gate: concurrency gate, the schedule request is an upstream call like any other.
    - exchange: provider exchange code (e.g. `MOEX`).
    - logger: injected logger.

    Assumptions/Invariants:
    - When the schedule cannot be fetched or does not mention the date, the weekend
      rule decides; the pipeline must not fail because of the calendar lookup.
    """

    def __init__(
        self,
        *,
        source: MarketDataSource,
        gate: ConcurrencyGate,
        exchange: str,
        logger: logging.Logger | None = None,
    ) -> None:
        if source is None:  # type: ignore[truthy-bool]
            raise ValueError("ExchangeTradingCalendar requires source")
        if gate is None:  # type: ignore[truthy-bool]
            raise ValueError("ExchangeTradingCalendar requires gate")
        if not exchange.strip():
            raise ValueError("ExchangeTradingCalendar requires non-empty exchange")
        self._source = source
        self._gate = gate
        self._exchange = exchange.strip()
        self._fallback = WeekendTradingCalendar()
        self._log = logger if logger is not None else log

    async def is_trading_day(self, day: date) -> bool:
        try:
            async with self._gate.permit(_SCHEDULE_OPERATION_CLASS):
                schedule = await asyncio.to_thread(
                    self._source.fetch_trading_schedule,
                    self._exchange,
                    day,
                    day,
                )
        except Exception:  # noqa: BLE001
            self._log.warning(
                "trading schedule lookup failed for %s %s, using weekend rule",
                self._exchange,
                day.isoformat(),
                exc_info=True,
            )
            return await self._fallback.is_trading_day(day)

        for trading_day in schedule:
            if trading_day.day == day:
                return trading_day.is_trading_day
        return await self._fallback.is_trading_day(day)
