from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, time
from typing import Mapping, Sequence

from invest_loader.contexts.ingestion.application.dto import (
    BatchSummary,
    SessionPriceReport,
    Success,
)
from invest_loader.contexts.ingestion.application.ports.stores import (
    InstrumentReader,
    SessionPriceStore,
)
from invest_loader.contexts.ingestion.application.services import (
    BatchStage,
    FetchOrchestrator,
    SessionPriceDeriver,
    TradingCalendar,
)
from invest_loader.contexts.ingestion.domain import (
    INSERTED,
    SESSION_KINDS,
    Instrument,
    InstrumentClass,
    NonTradingDay,
    PutResult,
    SessionKind,
    SessionPrice,
)

SessionCutoffs = Mapping[SessionKind, Mapping[InstrumentClass, time]]

DEFAULT_SESSION_CUTOFFS: dict[SessionKind, dict[InstrumentClass, time]] = {
    "morning_open": {"share": time(6, 59, 59), "future": time(8, 59, 59)},
    "main_close": {"share": time(18, 59, 59), "future": time(18, 59, 59)},
    "evening_close": {},
}


@dataclass(frozen=True, slots=True)
class DeriveSessionPricesUseCase:
    """
    Derive and store one session price kind for every eligible instrument of one date.

    Parameters:
    - instruments: instrument reference reader.
    - deriver: minute-candle based session price deriver.
    - store: idempotent session price store.
    - orchestrator: fan-out executor (no upstream calls, so no gate permits).
    - calendar: trading calendar consulted once per run unless the caller already did.
    - tz_name: session calendar timezone.
    - classes: instrument classes eligible for session prices.
    - currencies: instrument currencies eligible for session prices.
    - cutoffs: per kind and class inclusive local-time bound of considered candles.

    Assumptions/Invariants:
    - Minute candles of `day` are already persisted when `run` starts.
    - Instruments without candles in the window end as `NoData`, never as errors.
    """

    instruments: InstrumentReader
    deriver: SessionPriceDeriver
    store: SessionPriceStore
    orchestrator: FetchOrchestrator
    calendar: TradingCalendar
    tz_name: str = "Europe/Moscow"
    classes: tuple[InstrumentClass, ...] = ("share", "future")
    currencies: tuple[str, ...] = ("RUB",)
    cutoffs: SessionCutoffs = field(default_factory=lambda: dict(DEFAULT_SESSION_CUTOFFS))

    def __post_init__(self) -> None:
        if self.instruments is None:  # type: ignore[truthy-bool]
            raise ValueError("DeriveSessionPricesUseCase requires instruments")
        if self.deriver is None:  # type: ignore[truthy-bool]
            raise ValueError("DeriveSessionPricesUseCase requires deriver")
        if self.store is None:  # type: ignore[truthy-bool]
            raise ValueError("DeriveSessionPricesUseCase requires store")
        if self.orchestrator is None:  # type: ignore[truthy-bool]
            raise ValueError("DeriveSessionPricesUseCase requires orchestrator")
        if self.calendar is None:  # type: ignore[truthy-bool]
            raise ValueError("DeriveSessionPricesUseCase requires calendar")
        unknown = set(self.cutoffs) - set(SESSION_KINDS)
        if unknown:
            raise ValueError(f"cutoffs contain unknown session kinds: {sorted(unknown)}")

    async def run(
        self,
        day: date,
        kind: SessionKind,
        *,
        check_calendar: bool = True,
    ) -> SessionPriceReport:
        """
        Derive and persist `kind` prices of `day`.

        Parameters:
        - day: session calendar date.
        - kind: `morning_open`, `main_close` or `evening_close`.
        - check_calendar: `False` when the caller already consulted the trading calendar
          for this invocation (calendar-gated triggers).

        Returns:
        - Report with batch counters and every derived price.

        Errors/Exceptions:
        - Raises `NonTradingDay` before any candle scan when the calendar is checked and
          says so.
        - Propagates instrument reader failures.

        Side effects:
        - Candle window reads and idempotent session price writes.
        """
        _require_kind(kind)
        if check_calendar and not await self.calendar.is_trading_day(day):
            raise NonTradingDay(
                f"{day.isoformat()} has no {kind} session",
                details={"date": day.isoformat(), "kind": kind},
            )
        return await self._derive(day, kind, sink=self.store)

    async def preview(self, day: date, kind: SessionKind) -> tuple[SessionPrice, ...]:
        """
        Derive `kind` prices of `day` without persisting anything.

        Returns an empty tuple on non-trading days.
        """
        _require_kind(kind)
        if not await self.calendar.is_trading_day(day):
            return ()
        report = await self._derive(day, kind, sink=_PreviewSink())
        return report.prices

    async def _derive(
        self,
        day: date,
        kind: SessionKind,
        *,
        sink: SessionPriceStore | _PreviewSink,
    ) -> SessionPriceReport:
        instruments = await asyncio.to_thread(
            self.instruments.list_instruments,
            self.classes,
            self.currencies,
        )
        kind_cutoffs = self.cutoffs.get(kind, {})

        def _derive_one(instrument: Instrument) -> Sequence[SessionPrice]:
            not_after = kind_cutoffs.get(instrument.instrument_class)
            if kind == "morning_open":
                price = self.deriver.derive_open(
                    instrument.instrument_id, day, self.tz_name, not_after=not_after
                )
            else:
                price = self.deriver.derive_close(
                    instrument.instrument_id, day, self.tz_name, not_after=not_after
                )
            if price is None:
                return ()
            return (
                SessionPrice(
                    instrument_id=instrument.instrument_id,
                    trade_date=day,
                    kind=kind,
                    price=price,
                    currency=instrument.currency,
                    exchange=instrument.exchange,
                    instrument_class=instrument.instrument_class,
                ),
            )

        stage = BatchStage(name=f"session_{kind}", fetch=_derive_one, store=sink)
        reports = await self.orchestrator.run_batch_reports(instruments, stage)

        prices: list[SessionPrice] = []
        for report in reports:
            if isinstance(report.outcome, Success):
                prices.extend(report.outcome.records)

        return SessionPriceReport(
            trade_date=day,
            kind=kind,
            summary=BatchSummary.from_reports(stage.name, reports),
            prices=tuple(prices),
        )


class _PreviewSink:
    """Accepts every derived price without writing it."""

    def put_if_absent(self, record: SessionPrice) -> PutResult:
        return INSERTED

    def list_session_prices(self, trade_date: date, kind: SessionKind) -> Sequence[SessionPrice]:
        return ()


def _require_kind(kind: str) -> None:
    if kind not in SESSION_KINDS:
        raise ValueError(f"session kind must be one of {SESSION_KINDS}, got {kind!r}")
