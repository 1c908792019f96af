from __future__ import annotations

import threading

from invest_loader.contexts.ingestion.application.ports.stores import TradeStore
from invest_loader.contexts.ingestion.domain import INSERTED, SKIPPED_EXISTING, PutResult, Trade


class InMemoryTradeStore(TradeStore):
    """Process-local last-trade storage keyed by `(instrument_id, ts)`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[tuple[str, object], Trade] = {}

    def put_if_absent(self, record: Trade) -> PutResult:
        key = (record.instrument_id.value, record.ts.value)
        with self._lock:
            if key in self._rows:
                return SKIPPED_EXISTING
            self._rows[key] = record
            return INSERTED

    def all_trades(self) -> tuple[Trade, ...]:
        with self._lock:
            return tuple(self._rows.values())
