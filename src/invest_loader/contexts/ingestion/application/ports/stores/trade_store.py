from __future__ import annotations

from typing import Protocol

from invest_loader.contexts.ingestion.domain import PutResult, Trade


class TradeStore(Protocol):
    """TradeStore — idempotent last-trade persistence keyed by `(instrument_id, ts)`."""

    def put_if_absent(self, record: Trade) -> PutResult:
        ...
