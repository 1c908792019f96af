from __future__ import annotations

from typing import Collection, Iterable, Sequence

from invest_loader.contexts.ingestion.application.ports.stores import InstrumentReader
from invest_loader.contexts.ingestion.domain import Instrument, InstrumentClass


class InMemoryInstrumentReader(InstrumentReader):
    """
    InMemoryInstrumentReader — fixed instrument list with the Postgres reader filter and
    ordering rules.
    """

    def __init__(self, instruments: Iterable[Instrument] = ()) -> None:
        self._instruments = tuple(instruments)

    def list_instruments(
        self,
        classes: Collection[InstrumentClass] | None = None,
        currencies: Collection[str] | None = None,
    ) -> Sequence[Instrument]:
        wanted_currencies = (
            {item.upper() for item in currencies} if currencies is not None else None
        )
        selected = [
            instrument
            for instrument in self._instruments
            if (classes is None or instrument.instrument_class in classes)
            and (wanted_currencies is None or instrument.currency in wanted_currencies)
        ]
        return tuple(
            sorted(
                selected,
                key=lambda item: (item.instrument_class, item.instrument_id.value),
            )
        )
