from __future__ import annotations

import threading
from datetime import date
from typing import Sequence

from invest_loader.contexts.ingestion.application.ports.stores import SessionPriceStore
from invest_loader.contexts.ingestion.domain import (
    INSERTED,
    SKIPPED_EXISTING,
    PutResult,
    SessionKind,
    SessionPrice,
)


class InMemorySessionPriceStore(SessionPriceStore):
    """Process-local session price storage keyed by `(instrument_id, trade_date, kind)`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[tuple[str, date, str], SessionPrice] = {}

    def put_if_absent(self, record: SessionPrice) -> PutResult:
        key = (record.instrument_id.value, record.trade_date, record.kind)
        with self._lock:
            if key in self._rows:
                return SKIPPED_EXISTING
            self._rows[key] = record
            return INSERTED

    def list_session_prices(self, trade_date: date, kind: SessionKind) -> Sequence[SessionPrice]:
        with self._lock:
            rows = [
                price
                for price in self._rows.values()
                if price.trade_date == trade_date and price.kind == kind
            ]
        return tuple(sorted(rows, key=lambda price: price.instrument_id.value))
