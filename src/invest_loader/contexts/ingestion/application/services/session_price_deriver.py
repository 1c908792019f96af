from __future__ import annotations

from datetime import date, time
from typing import Sequence
from zoneinfo import ZoneInfo

from invest_loader.contexts.ingestion.application.ports.stores import CandleStore
from invest_loader.contexts.ingestion.domain import Candle
from invest_loader.shared_kernel.primitives import CandleInterval, InstrumentId, TimeRange


class SessionPriceDeriver:
    """
    Derive session open/close prices from stored minute candles of one local trading day.

    Parameters:
    - candle_store: read access to persisted minute candles.

    Assumptions/Invariants:
    - The window is `[local midnight, next local midnight)` of `day` in `tz_name`.
    - Candles with any price <= 0 are ignored, so a derived price is always > 0.
    - No candles in the window means "no price" (`None`), never an error.
    - The trading calendar is the caller's concern; only candle presence is inspected.
    """

    def __init__(self, *, candle_store: CandleStore) -> None:
        if candle_store is None:  # type: ignore[truthy-bool]
            raise ValueError("SessionPriceDeriver requires candle_store")
        self._candle_store = candle_store

    def derive_open(
        self,
        instrument_id: InstrumentId,
        day: date,
        tz_name: str,
        *,
        not_after: time | None = None,
    ) -> float | None:
        """
        Return the `open` of the earliest valid minute candle of the local day.

        Parameters:
        - instrument_id: instrument to scan.
        - day: local calendar date.
        - tz_name: IANA timezone of the session calendar.
        - not_after: optional inclusive local-time bound (e.g. end of morning auction).

        Returns:
        - Opening price or `None` when no valid candle is in the window.

        Errors/Exceptions:
        - Propagates storage errors.

        Side effects:
        - One candle window read.
        """
        candles = self._valid_candles(instrument_id, day, tz_name, not_after=not_after)
        if not candles:
            return None
        return candles[0].open

    def derive_close(
        self,
        instrument_id: InstrumentId,
        day: date,
        tz_name: str,
        *,
        not_after: time | None = None,
    ) -> float | None:
        """
        Return the `close` of the latest valid minute candle of the local day.

        Parameters:
        - instrument_id: instrument to scan.
        - day: local calendar date.
        - tz_name: IANA timezone of the session calendar.
        - not_after: optional inclusive local-time bound (e.g. end of main session).

        Returns:
        - Closing price or `None` when no valid candle is in the window.

        Errors/Exceptions:
        - Propagates storage errors.

        Side effects:
        - One candle window read.
        """
        candles = self._valid_candles(instrument_id, day, tz_name, not_after=not_after)
        if not candles:
            return None
        return candles[-1].close

    def _valid_candles(
        self,
        instrument_id: InstrumentId,
        day: date,
        tz_name: str,
        *,
        not_after: time | None,
    ) -> list[Candle]:
        window = TimeRange.local_day(day, tz_name)
        rows: Sequence[Candle] = self._candle_store.list_candles(
            instrument_id,
            window,
            CandleInterval.minute(),
        )
        tz = ZoneInfo(tz_name)
        selected = [
            candle
            for candle in rows
            if window.contains(candle.ts)
            and candle.has_valid_prices()
            and (not_after is None or candle.ts.value.astimezone(tz).time() <= not_after)
        ]
        selected.sort(key=lambda candle: candle.ts.value)
        return selected
