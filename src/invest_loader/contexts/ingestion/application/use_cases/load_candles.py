from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Collection, Sequence

from invest_loader.contexts.ingestion.application.dto import CandleLoadReport
from invest_loader.contexts.ingestion.application.ports.sources import MarketDataSource
from invest_loader.contexts.ingestion.application.ports.stores import (
    CandleStore,
    InstrumentReader,
)
from invest_loader.contexts.ingestion.application.services import BatchStage, FetchOrchestrator
from invest_loader.contexts.ingestion.domain import (
    INSTRUMENT_CLASSES,
    Candle,
    Instrument,
    InstrumentClass,
    ValidationError,
)
from invest_loader.shared_kernel.primitives import CandleInterval

CANDLES_OPERATION_CLASS = "candles"


@dataclass(frozen=True, slots=True)
class LoadCandlesUseCase:
    """
    Load minute or daily candles of one date for every configured instrument.

    Parameters:
    - source: upstream provider.
    - instruments: instrument reference reader.
    - store: idempotent candle store.
    - orchestrator: fan-out executor sharing the concurrency gate.
    - classes: instrument classes included in the batch.

    Assumptions/Invariants:
    - Incomplete candles and candles with non-positive prices are dropped and counted.
    - Re-running the same date only reports `existing_items_skipped`.
    """

    source: MarketDataSource
    instruments: InstrumentReader
    store: CandleStore
    orchestrator: FetchOrchestrator
    classes: tuple[InstrumentClass, ...] = INSTRUMENT_CLASSES

    def __post_init__(self) -> None:
        """
        Validate required collaborators.

        Parameters:
        - None.

        Returns:
        - None.

        Errors/Exceptions:
        - Raises `ValueError` on missing collaborators or empty class filter.

        Side effects:
        - None.
        """
        if self.source is None:  # type: ignore[truthy-bool]
            raise ValueError("LoadCandlesUseCase requires source")
        if self.instruments is None:  # type: ignore[truthy-bool]
            raise ValueError("LoadCandlesUseCase requires instruments")
        if self.store is None:  # type: ignore[truthy-bool]
            raise ValueError("LoadCandlesUseCase requires store")
        if self.orchestrator is None:  # type: ignore[truthy-bool]
            raise ValueError("LoadCandlesUseCase requires orchestrator")
        if not self.classes:
            raise ValueError("LoadCandlesUseCase requires at least one instrument class")

    async def run(
        self,
        day: date,
        interval: CandleInterval,
        *,
        instrument_ids: Collection[str] | None = None,
    ) -> CandleLoadReport:
        """
        Fetch and persist candles of `day` for every instrument of the configured classes.

        Parameters:
        - day: provider-local trading date.
        - interval: `minute` or `day`.
        - instrument_ids: optional subset of instrument ids.

        Returns:
        - Candle load report with per-outcome instrument counts and candle counters.

        Errors/Exceptions:
        - Propagates instrument reader failures; per-instrument failures are counted.

        Side effects:
        - Upstream calls through the gate and idempotent candle writes.
        """
        instruments = await asyncio.to_thread(self.instruments.list_instruments, self.classes)
        selected = _select(instruments, instrument_ids)

        def _fetch(instrument: Instrument) -> Sequence[Candle]:
            return self.source.fetch_candles(instrument.instrument_id, day, interval)

        stage = BatchStage(
            name=f"{interval.code}_candles",
            fetch=_fetch,
            store=self.store,
            operation_class=CANDLES_OPERATION_CLASS,
            validate=_validate_candle,
        )
        summary = await self.orchestrator.run_batch(selected, stage)
        return CandleLoadReport(trade_date=day, interval=interval.code, summary=summary)


def _validate_candle(candle: Candle) -> None:
    problem = candle.validation_problem()
    if problem is not None:
        raise ValidationError(
            problem,
            details={"instrument_id": candle.instrument_id.value, "ts": str(candle.ts)},
        )


def _select(
    instruments: Sequence[Instrument],
    instrument_ids: Collection[str] | None,
) -> list[Instrument]:
    if instrument_ids is None:
        return list(instruments)
    wanted = set(instrument_ids)
    return [item for item in instruments if item.instrument_id.value in wanted]
