from __future__ import annotations

from dataclasses import dataclass

from invest_loader.shared_kernel.primitives import CandleInterval, InstrumentId, UtcTimestamp


@dataclass(frozen=True, slots=True)
class Candle:
    """
    Candle — OHLCV summary for one instrument over one minute or one day bucket.

    Natural key: `(instrument_id, ts, interval)`.

    Structural invariants are enforced here; price sanity (positive prices, OHLC ordering,
    completeness) is checked by `validation_problem()` so ingestion can drop and count
    bad rows instead of failing on construction.
    """

    instrument_id: InstrumentId
    ts: UtcTimestamp
    interval: CandleInterval
    open: float
    high: float
    low: float
    close: float
    volume: int
    is_complete: bool

    def __post_init__(self) -> None:
        if self.instrument_id is None:  # type: ignore[truthy-bool]
            raise ValueError("Candle requires instrument_id")
        if self.volume < 0:
            raise ValueError("Candle requires volume >= 0")

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.instrument_id.value, str(self.ts), self.interval.code)

    def has_valid_prices(self) -> bool:
        return min(self.open, self.high, self.low, self.close) > 0

    def validation_problem(self) -> str | None:
        """
        Describe why the candle must not be persisted, or `None` when it is acceptable.

        Parameters:
        - None.

        Returns:
        - Short reason text or `None`.

        Assumptions/Invariants:
        - Incomplete candles are still forming upstream and are never stored.
        """
        if not self.is_complete:
            return "candle is not complete"
        if not self.has_valid_prices():
            return "candle has non-positive price"
        if self.high < max(self.open, self.close) or self.low > min(self.open, self.close):
            return "candle violates OHLC ordering"
        return None
