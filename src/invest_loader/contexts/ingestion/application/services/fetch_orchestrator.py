from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from invest_loader.contexts.ingestion.application.dto import (
    BatchSummary,
    Error,
    InstrumentReport,
    NoData,
    Permit,
    Success,
)
from invest_loader.contexts.ingestion.application.ports.stores import IdempotentStore
from invest_loader.contexts.ingestion.domain import (
    INSERTED,
    Instrument,
    RateLimitExceeded,
    UpstreamFetchError,
    ValidationError,
)

from .concurrency_gate import ConcurrencyGate

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BatchStage:
    """
    One fan-out stage executed by `FetchOrchestrator`.

    Parameters:
    - name: stage label for logs, metrics and summaries.
    - fetch: blocking callable returning records of one instrument; runs in a worker thread.
    - store: idempotent sink for accepted records.
    - operation_class: gate operation class; `None` means the fetch does not call the
      upstream provider and runs without a permit.
    - validate: optional check raising `ValidationError` for records that must be dropped.

    Assumptions/Invariants:
    - `fetch` and `store` are thread-safe for concurrent calls.
    """

    name: str
    fetch: Callable[[Instrument], Sequence[Any]]
    store: IdempotentStore[Any]
    operation_class: str | None = None
    validate: Callable[[Any], None] | None = None

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("BatchStage requires non-empty name")
        if self.fetch is None:  # type: ignore[truthy-bool]
            raise ValueError("BatchStage requires fetch")
        if self.store is None:  # type: ignore[truthy-bool]
            raise ValueError("BatchStage requires store")


class FetchOrchestrator:
    """
    Fan one stage out across an instrument list with per-instrument fault isolation.

    Per instrument, strictly in order: acquire permit -> fetch -> release permit ->
    validate -> put_if_absent for every accepted record. Across instruments there is no
    ordering; the summary is built once every unit of work has finished.

    Parameters:
    - gate: shared concurrency gate for upstream calls.
    - rate_limit_retries: extra acquire attempts after `RateLimitExceeded` for one instrument.
    - max_in_flight: optional bound on concurrently running instrument units.
    - on_report: optional hook invoked with `(stage_name, report)` per instrument.
    - logger: injected logger; module logger when omitted.
    """

    def __init__(
        self,
        *,
        gate: ConcurrencyGate,
        rate_limit_retries: int = 1,
        max_in_flight: int | None = None,
        on_report: Callable[[str, InstrumentReport], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if gate is None:  # type: ignore[truthy-bool]
            raise ValueError("FetchOrchestrator requires gate")
        if rate_limit_retries < 0:
            raise ValueError(f"rate_limit_retries must be >= 0, got {rate_limit_retries}")
        if max_in_flight is not None and max_in_flight <= 0:
            raise ValueError(f"max_in_flight must be > 0 when provided, got {max_in_flight}")

        self._gate = gate
        self._rate_limit_retries = rate_limit_retries
        self._max_in_flight = max_in_flight
        self._on_report = on_report
        self._log = logger if logger is not None else log

    async def run_batch(self, instruments: Sequence[Instrument], stage: BatchStage) -> BatchSummary:
        """
        Run `stage` for every instrument and return aggregate counters.

        Parameters:
        - instruments: batch members; may be empty.
        - stage: fetch/validate/store definition.

        Returns:
        - Batch summary with `processed == len(instruments)`.

        Errors/Exceptions:
        - None for per-instrument failures; they are counted as `errored`.

        Side effects:
        - Upstream calls through the gate and idempotent writes.
        """
        reports = await self.run_batch_reports(instruments, stage)
        return BatchSummary.from_reports(stage.name, reports)

    async def run_batch_reports(
        self,
        instruments: Sequence[Instrument],
        stage: BatchStage,
    ) -> tuple[InstrumentReport, ...]:
        """
        Run `stage` for every instrument and return per-instrument reports in input order.

        Parameters:
        - instruments: batch members.
        - stage: stage definition.

        Returns:
        - One report per instrument with a tagged outcome.

        Errors/Exceptions:
        - None for per-instrument failures.

        Side effects:
        - Same as `run_batch`; emits one INFO summary log line.
        """
        limiter = asyncio.Semaphore(self._max_in_flight) if self._max_in_flight else None

        async def _bounded(instrument: Instrument) -> InstrumentReport:
            if limiter is None:
                return await self._run_one(instrument, stage)
            async with limiter:
                return await self._run_one(instrument, stage)

        reports = tuple(await asyncio.gather(*(_bounded(item) for item in instruments)))
        summary = BatchSummary.from_reports(stage.name, reports)
        self._log.info("batch finished %s", summary.describe())
        return reports

    async def _run_one(self, instrument: Instrument, stage: BatchStage) -> InstrumentReport:
        instrument_id = instrument.instrument_id
        try:
            records = await self._fetch(instrument, stage)
        except Exception as error:  # noqa: BLE001
            self._log.exception(
                "stage %s: instrument %s (%s) fetch failed",
                stage.name,
                instrument_id,
                instrument.ticker,
            )
            return self._emit(stage, InstrumentReport(instrument_id, Error(error)))

        if not records:
            self._log.debug("stage %s: instrument %s has no data", stage.name, instrument_id)
            return self._emit(stage, InstrumentReport(instrument_id, NoData()))

        accepted: list[Any] = []
        invalid = 0
        try:
            for record in records:
                if stage.validate is not None:
                    try:
                        stage.validate(record)
                    except ValidationError as error:
                        invalid += 1
                        self._log.debug(
                            "stage %s: instrument %s record dropped: %s",
                            stage.name,
                            instrument_id,
                            error.message,
                        )
                        continue
                accepted.append(record)

            inserted, skipped = await asyncio.to_thread(_persist_all, stage.store, accepted)
        except Exception as error:  # noqa: BLE001
            self._log.exception(
                "stage %s: instrument %s (%s) persistence failed",
                stage.name,
                instrument_id,
                instrument.ticker,
            )
            return self._emit(
                stage,
                InstrumentReport(instrument_id, Error(error), invalid_filtered=invalid),
            )

        return self._emit(
            stage,
            InstrumentReport(
                instrument_id,
                Success(tuple(accepted)),
                inserted=inserted,
                skipped_existing=skipped,
                invalid_filtered=invalid,
            ),
        )

    async def _fetch(self, instrument: Instrument, stage: BatchStage) -> Sequence[Any]:
        if stage.operation_class is None:
            return await asyncio.to_thread(stage.fetch, instrument)

        permit = await self._acquire_with_retry(stage.operation_class)
        try:
            return await asyncio.to_thread(stage.fetch, instrument)
        except UpstreamFetchError:
            raise
        except Exception as error:
            raise UpstreamFetchError(
                f"{stage.name} fetch failed for {instrument.instrument_id}: {error}",
                details={"instrument_id": instrument.instrument_id.value, "stage": stage.name},
            ) from error
        finally:
            self._gate.release(permit)

    async def _acquire_with_retry(self, operation_class: str) -> Permit:
        attempt = 0
        while True:
            try:
                return await self._gate.acquire(operation_class)
            except RateLimitExceeded:
                if attempt >= self._rate_limit_retries:
                    raise
                attempt += 1
                self._log.warning(
                    "retrying permit for %s (attempt %s/%s)",
                    operation_class,
                    attempt,
                    self._rate_limit_retries,
                )

    def _emit(self, stage: BatchStage, report: InstrumentReport) -> InstrumentReport:
        if self._on_report is not None:
            try:
                self._on_report(stage.name, report)
            except Exception:  # noqa: BLE001
                self._log.exception(
                    "stage %s: on_report hook failed for %s",
                    stage.name,
                    report.instrument_id,
                )
        return report


def _persist_all(store: IdempotentStore[Any], records: Sequence[Any]) -> tuple[int, int]:
    inserted = 0
    skipped = 0
    for record in records:
        if store.put_if_absent(record) == INSERTED:
            inserted += 1
        else:
            skipped += 1
    return inserted, skipped
