from __future__ import annotations

from typing import Protocol, Sequence

from invest_loader.contexts.ingestion.domain import Candle, PutResult
from invest_loader.shared_kernel.primitives import CandleInterval, InstrumentId, TimeRange


class CandleStore(Protocol):
    """
    CandleStore — idempotent candle persistence plus window reads for session derivation.

    Contract:
    - put_if_absent(candle) keyed by `(instrument_id, ts, interval)`
    - list_candles(instrument_id, time_range, interval) ordered by ts ascending,
      `time_range` half-open
    """

    def put_if_absent(self, record: Candle) -> PutResult:
        ...

    def list_candles(
        self,
        instrument_id: InstrumentId,
        time_range: TimeRange,
        interval: CandleInterval,
    ) -> Sequence[Candle]:
        ...
