from __future__ import annotations

from datetime import date
from typing import Protocol, Sequence

from invest_loader.contexts.ingestion.domain import PutResult, SessionKind, SessionPrice


class SessionPriceStore(Protocol):
    """
    SessionPriceStore — idempotent session price persistence.

    Contract:
    - put_if_absent(price) keyed by `(instrument_id, trade_date, kind)`
    - list_session_prices(trade_date, kind) ordered by instrument id
    """

    def put_if_absent(self, record: SessionPrice) -> PutResult:
        ...

    def list_session_prices(self, trade_date: date, kind: SessionKind) -> Sequence[SessionPrice]:
        ...
