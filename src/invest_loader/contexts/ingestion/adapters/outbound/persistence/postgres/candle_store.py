from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Sequence

from invest_loader.contexts.ingestion.application.ports.stores import CandleStore
from invest_loader.contexts.ingestion.domain import Candle, PutResult
from invest_loader.shared_kernel.primitives import (
    CandleInterval,
    InstrumentId,
    TimeRange,
    UtcTimestamp,
)

from .gateway import IngestionPostgresGateway
from .idempotent_insert import insert_if_absent


class PostgresCandleStore(CandleStore):
    """
    PostgresCandleStore — idempotent candle storage keyed by `(instrument_id, ts, candle_interval)`.

    Related:
      - src/invest_loader/contexts/ingestion/application/ports/stores/candle_store.py
      - alembic/versions/20261019_0001_ingestion_storage_v1.py
    """

    def __init__(
        self,
        *,
        gateway: IngestionPostgresGateway,
        candles_table: str = "invest.candles",
    ) -> None:
        if gateway is None:  # type: ignore[truthy-bool]
            raise ValueError("PostgresCandleStore requires gateway")
        normalized_table = candles_table.strip()
        if not normalized_table:
            raise ValueError("PostgresCandleStore requires non-empty candles_table")
        self._gateway = gateway
        self._candles_table = normalized_table

    def put_if_absent(self, record: Candle) -> PutResult:
        """
        Insert candle unless its natural key already exists.

        Args:
            record: Candle to store.
        Returns:
            PutResult: `inserted` or `skipped_existing`.
        Assumptions:
            A unique violation raised by a concurrent writer means the row exists.
        Raises:
            Exception: Non-conflict storage errors.
        Side Effects:
            Executes one SQL insert statement.
        """
        query = f"""
        INSERT INTO {self._candles_table}
        (
            instrument_id,
            ts,
            candle_interval,
            open,
            high,
            low,
            close,
            volume,
            is_complete
        )
        VALUES
        (
            %(instrument_id)s,
            %(ts)s,
            %(candle_interval)s,
            %(open)s,
            %(high)s,
            %(low)s,
            %(close)s,
            %(volume)s,
            %(is_complete)s
        )
        ON CONFLICT (instrument_id, ts, candle_interval) DO NOTHING
        RETURNING instrument_id
        """
        return insert_if_absent(
            gateway=self._gateway,
            query=query,
            parameters={
                "instrument_id": record.instrument_id.value,
                "ts": record.ts.value,
                "candle_interval": record.interval.code,
                "open": record.open,
                "high": record.high,
                "low": record.low,
                "close": record.close,
                "volume": record.volume,
                "is_complete": record.is_complete,
            },
            key=":".join(record.key),
        )

    def list_candles(
        self,
        instrument_id: InstrumentId,
        time_range: TimeRange,
        interval: CandleInterval,
    ) -> Sequence[Candle]:
        """
        Read candles of one instrument inside a half-open time range.

        Args:
            instrument_id: Instrument identity.
            time_range: `[start, end)` window.
            interval: Candle granularity.
        Returns:
            Sequence[Candle]: Candles ordered by `ts ASC`.
        Raises:
            ValueError: If a row cannot be mapped.
        Side Effects:
            Executes one SQL select statement.
        """
        query = f"""
        SELECT
            instrument_id,
            ts,
            candle_interval,
            open,
            high,
            low,
            close,
            volume,
            is_complete
        FROM {self._candles_table}
        WHERE instrument_id = %(instrument_id)s
          AND candle_interval = %(candle_interval)s
          AND ts >= %(start)s
          AND ts < %(end)s
        ORDER BY ts ASC
        """
        rows = self._gateway.fetch_all(
            query=query,
            parameters={
                "instrument_id": instrument_id.value,
                "candle_interval": interval.code,
                "start": time_range.start.value,
                "end": time_range.end.value,
            },
        )
        return tuple(_map_candle_row(row=row) for row in rows)


def _map_candle_row(*, row: Mapping[str, Any]) -> Candle:
    ts = row["ts"]
    if not isinstance(ts, datetime):
        raise ValueError(f"candle row ts must be datetime, got {type(ts).__name__}")
    return Candle(
        instrument_id=InstrumentId(str(row["instrument_id"])),
        ts=UtcTimestamp(ts),
        interval=CandleInterval(str(row["candle_interval"])),
        open=float(row["open"]),
        high=float(row["high"]),
        low=float(row["low"]),
        close=float(row["close"]),
        volume=int(row["volume"]),
        is_complete=bool(row["is_complete"]),
    )
