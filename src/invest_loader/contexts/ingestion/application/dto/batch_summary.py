from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from invest_loader.contexts.ingestion.domain import SessionKind, SessionPrice

from .fetch_outcome import Error, InstrumentReport, NoData, Success


@dataclass(frozen=True, slots=True)
class BatchSummary:
    """
    Aggregate counters of one orchestrated batch stage.

    Parameters:
    - stage_name: stage label used in logs and metrics.
    - processed: instruments whose unit of work completed (any outcome).
    - succeeded: instruments with `Success`.
    - no_data: instruments with `NoData`.
    - errored: instruments with `Error`.
    - inserted: records newly written across the batch.
    - skipped_existing: records already present across the batch.
    - invalid_filtered: records dropped by validation across the batch.
    - failed_instruments: ids of errored instruments, input order.

    Assumptions/Invariants:
    - `processed == succeeded + no_data + errored`.
    - All counters are non-negative.
    """

    stage_name: str
    processed: int
    succeeded: int
    no_data: int
    errored: int
    inserted: int = 0
    skipped_existing: int = 0
    invalid_filtered: int = 0
    failed_instruments: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        counters = (
            self.processed,
            self.succeeded,
            self.no_data,
            self.errored,
            self.inserted,
            self.skipped_existing,
            self.invalid_filtered,
        )
        if min(counters) < 0:
            raise ValueError(f"BatchSummary counters must be >= 0, got {counters}")
        if self.processed != self.succeeded + self.no_data + self.errored:
            raise ValueError(
                "BatchSummary requires processed == succeeded + no_data + errored, got "
                f"{self.processed} != {self.succeeded} + {self.no_data} + {self.errored}"
            )

    @classmethod
    def from_reports(cls, stage_name: str, reports: Iterable[InstrumentReport]) -> BatchSummary:
        succeeded = no_data = errored = inserted = skipped = invalid = 0
        failed: list[str] = []
        for report in reports:
            if isinstance(report.outcome, Success):
                succeeded += 1
            elif isinstance(report.outcome, NoData):
                no_data += 1
            elif isinstance(report.outcome, Error):
                errored += 1
                failed.append(report.instrument_id.value)
            inserted += report.inserted
            skipped += report.skipped_existing
            invalid += report.invalid_filtered
        return cls(
            stage_name=stage_name,
            processed=succeeded + no_data + errored,
            succeeded=succeeded,
            no_data=no_data,
            errored=errored,
            inserted=inserted,
            skipped_existing=skipped,
            invalid_filtered=invalid,
            failed_instruments=tuple(failed),
        )

    @classmethod
    def empty(cls, stage_name: str) -> BatchSummary:
        return cls(stage_name=stage_name, processed=0, succeeded=0, no_data=0, errored=0)

    def describe(self) -> str:
        return (
            f"{self.stage_name}: processed={self.processed} succeeded={self.succeeded} "
            f"no_data={self.no_data} errored={self.errored} inserted={self.inserted} "
            f"skipped_existing={self.skipped_existing} invalid_filtered={self.invalid_filtered}"
        )


@dataclass(frozen=True, slots=True)
class CandleLoadReport:
    """
    Result of one candle load stage for one date and interval.

    `total_candles` counts valid candles received (newly saved plus already stored).
    """

    trade_date: date
    interval: str
    summary: BatchSummary

    @property
    def processed_instruments(self) -> int:
        return self.summary.processed

    @property
    def successful_instruments(self) -> int:
        return self.summary.succeeded

    @property
    def no_data_instruments(self) -> int:
        return self.summary.no_data

    @property
    def error_instruments(self) -> int:
        return self.summary.errored

    @property
    def total_candles(self) -> int:
        return self.summary.inserted + self.summary.skipped_existing

    @property
    def new_items_saved(self) -> int:
        return self.summary.inserted

    @property
    def existing_items_skipped(self) -> int:
        return self.summary.skipped_existing

    @property
    def invalid_items_filtered(self) -> int:
        return self.summary.invalid_filtered

    def describe(self) -> str:
        return (
            f"{self.interval} candles {self.trade_date.isoformat()}: "
            f"instruments={self.processed_instruments} ok={self.successful_instruments} "
            f"no_data={self.no_data_instruments} errors={self.error_instruments} "
            f"candles={self.total_candles} saved={self.new_items_saved} "
            f"skipped={self.existing_items_skipped} invalid={self.invalid_items_filtered}"
        )


@dataclass(frozen=True, slots=True)
class SessionPriceReport:
    """Result of one session-price stage; `prices` holds every derived price."""

    trade_date: date
    kind: SessionKind
    summary: BatchSummary
    prices: tuple[SessionPrice, ...] = ()

    def describe(self) -> str:
        return (
            f"{self.kind} {self.trade_date.isoformat()}: derived={len(self.prices)} "
            f"saved={self.summary.inserted} skipped={self.summary.skipped_existing} "
            f"no_data={self.summary.no_data} errors={self.summary.errored}"
        )


@dataclass(frozen=True, slots=True)
class TradeLoadReport:
    trade_date: date
    summary: BatchSummary

    def describe(self) -> str:
        return (
            f"last trades {self.trade_date.isoformat()}: "
            f"instruments={self.summary.processed} saved={self.summary.inserted} "
            f"skipped={self.summary.skipped_existing} errors={self.summary.errored}"
        )


@dataclass(frozen=True, slots=True)
class AggregationRefreshReport:
    scope: str

    def describe(self) -> str:
        return f"volume aggregation refreshed: {self.scope}"
