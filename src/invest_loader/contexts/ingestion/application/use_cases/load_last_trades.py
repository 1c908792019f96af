from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Sequence

from invest_loader.contexts.ingestion.application.dto import TradeLoadReport
from invest_loader.contexts.ingestion.application.ports.sources import MarketDataSource
from invest_loader.contexts.ingestion.application.ports.stores import (
    InstrumentReader,
    TradeStore,
)
from invest_loader.contexts.ingestion.application.services import BatchStage, FetchOrchestrator
from invest_loader.contexts.ingestion.domain import (
    Instrument,
    InstrumentClass,
    Trade,
    ValidationError,
)

LAST_TRADES_OPERATION_CLASS = "last_trades"


@dataclass(frozen=True, slots=True)
class LoadLastTradesUseCase:
    """
    Load last trades of one date for shares and futures.

    Parameters:
    - source: upstream provider.
    - instruments: instrument reference reader.
    - store: idempotent trade store keyed by `(instrument_id, ts)`.
    - orchestrator: fan-out executor sharing the concurrency gate.
    - classes: instrument classes included in the batch.

    Assumptions/Invariants:
    - Trades are re-polled many times a day; repeated rows end as `skipped_existing`.
    """

    source: MarketDataSource
    instruments: InstrumentReader
    store: TradeStore
    orchestrator: FetchOrchestrator
    classes: tuple[InstrumentClass, ...] = ("share", "future")

    def __post_init__(self) -> None:
        if self.source is None:  # type: ignore[truthy-bool]
            raise ValueError("LoadLastTradesUseCase requires source")
        if self.instruments is None:  # type: ignore[truthy-bool]
            raise ValueError("LoadLastTradesUseCase requires instruments")
        if self.store is None:  # type: ignore[truthy-bool]
            raise ValueError("LoadLastTradesUseCase requires store")
        if self.orchestrator is None:  # type: ignore[truthy-bool]
            raise ValueError("LoadLastTradesUseCase requires orchestrator")

    async def run(self, day: date) -> TradeLoadReport:
        instruments = await asyncio.to_thread(self.instruments.list_instruments, self.classes)

        def _fetch(instrument: Instrument) -> Sequence[Trade]:
            return self.source.fetch_last_trades(instrument.instrument_id, day)

        stage = BatchStage(
            name="last_trades",
            fetch=_fetch,
            store=self.store,
            operation_class=LAST_TRADES_OPERATION_CLASS,
            validate=_validate_trade,
        )
        summary = await self.orchestrator.run_batch(instruments, stage)
        return TradeLoadReport(trade_date=day, summary=summary)


def _validate_trade(trade: Trade) -> None:
    problem = trade.validation_problem()
    if problem is not None:
        raise ValidationError(
            problem,
            details={"instrument_id": trade.instrument_id.value, "ts": str(trade.ts)},
        )
