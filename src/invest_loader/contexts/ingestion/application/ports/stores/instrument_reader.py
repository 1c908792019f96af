from __future__ import annotations

from typing import Collection, Protocol, Sequence

from invest_loader.contexts.ingestion.domain import Instrument, InstrumentClass


class InstrumentReader(Protocol):
    """
    InstrumentReader — read-only access to preloaded instrument reference data.

    Contract:
    - list_instruments(classes=None, currencies=None) ordered by class then instrument id;
      `None` filters mean "all".

    Errors/Exceptions:
    - Propagates storage errors: without the instrument list the whole batch is meaningless.
    """

    def list_instruments(
        self,
        classes: Collection[InstrumentClass] | None = None,
        currencies: Collection[str] | None = None,
    ) -> Sequence[Instrument]:
        ...
