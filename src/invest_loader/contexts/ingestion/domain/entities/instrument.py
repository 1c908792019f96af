from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from invest_loader.shared_kernel.primitives import InstrumentId

InstrumentClass = Literal["share", "future", "indicative"]

INSTRUMENT_CLASSES: tuple[InstrumentClass, ...] = ("share", "future", "indicative")


@dataclass(frozen=True, slots=True)
class Instrument:
    """
    Instrument — immutable reference data for one tradable or indicative instrument.

    Parameters:
    - instrument_id: provider-assigned identity.
    - ticker: display ticker, not unique across classes.
    - instrument_class: `share`, `future` or `indicative`.
    - currency: lower/upper case accepted, stored upper case (`RUB`).
    - exchange: provider exchange/session label.

    Assumptions/Invariants:
    - Rows come from a separate preload process and are never mutated here.
    """

    instrument_id: InstrumentId
    ticker: str
    instrument_class: InstrumentClass
    currency: str
    exchange: str

    def __post_init__(self) -> None:
        if self.instrument_id is None:  # type: ignore[truthy-bool]
            raise ValueError("Instrument requires instrument_id")
        if not self.ticker.strip():
            raise ValueError("Instrument requires non-empty ticker")
        if self.instrument_class not in INSTRUMENT_CLASSES:
            raise ValueError(
                f"Instrument.instrument_class must be one of {INSTRUMENT_CLASSES}, "
                f"got {self.instrument_class!r}"
            )
        object.__setattr__(self, "currency", self.currency.strip().upper())
        object.__setattr__(self, "exchange", self.exchange.strip())
