from __future__ import annotations

import threading
from typing import Sequence

from invest_loader.contexts.ingestion.application.ports.stores import CandleStore
from invest_loader.contexts.ingestion.domain import INSERTED, SKIPPED_EXISTING, Candle, PutResult
from invest_loader.shared_kernel.primitives import CandleInterval, InstrumentId, TimeRange


class InMemoryCandleStore(CandleStore):
    """
    InMemoryCandleStore — process-local candle storage with the same conditional-insert
    semantics as the Postgres adapter.

    Related:
      - src/invest_loader/contexts/ingestion/adapters/outbound/persistence/postgres/candle_store.py
      - tests/unit/contexts/ingestion/application/use_cases
    """

    def __init__(self) -> None:
        """
        Initialize empty candle storage.

        Args:
            None.
        Returns:
            None.
        Assumptions:
            Writes come from worker threads, so every access takes the lock.
        Raises:
            None.
        Side Effects:
            Creates mutable in-memory dictionary state.
        """
        self._lock = threading.Lock()
        self._rows: dict[tuple[str, object, str], Candle] = {}

    def put_if_absent(self, record: Candle) -> PutResult:
        key = (record.instrument_id.value, record.ts.value, record.interval.code)
        with self._lock:
            if key in self._rows:
                return SKIPPED_EXISTING
            self._rows[key] = record
            return INSERTED

    def list_candles(
        self,
        instrument_id: InstrumentId,
        time_range: TimeRange,
        interval: CandleInterval,
    ) -> Sequence[Candle]:
        with self._lock:
            rows = [
                candle
                for candle in self._rows.values()
                if candle.instrument_id == instrument_id
                and candle.interval == interval
                and time_range.contains(candle.ts)
            ]
        return tuple(sorted(rows, key=lambda candle: candle.ts.value))

    def all_candles(self) -> tuple[Candle, ...]:
        with self._lock:
            return tuple(self._rows.values())
