from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Literal

from invest_loader.shared_kernel.primitives import InstrumentId

from .instrument import InstrumentClass

SessionKind = Literal["morning_open", "main_close", "evening_close"]

SESSION_KINDS: tuple[SessionKind, ...] = ("morning_open", "main_close", "evening_close")


@dataclass(frozen=True, slots=True)
class SessionPrice:
    """
    SessionPrice — opening or closing price of one trading session for one instrument and date.

    Natural key: `(instrument_id, trade_date, kind)`.
    Always derived from stored minute candles, never fetched directly.
    """

    instrument_id: InstrumentId
    trade_date: date
    kind: SessionKind
    price: float
    currency: str
    exchange: str
    instrument_class: InstrumentClass

    def __post_init__(self) -> None:
        if self.kind not in SESSION_KINDS:
            raise ValueError(f"SessionPrice.kind must be one of {SESSION_KINDS}, got {self.kind!r}")
        if self.price <= 0:
            raise ValueError(f"SessionPrice requires price > 0, got {self.price}")

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.instrument_id.value, self.trade_date.isoformat(), self.kind)
