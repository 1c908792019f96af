from __future__ import annotations

from typing import Any, Collection, Mapping, Sequence

from invest_loader.contexts.ingestion.application.ports.stores import InstrumentReader
from invest_loader.contexts.ingestion.domain import Instrument, InstrumentClass
from invest_loader.shared_kernel.primitives import InstrumentId

from .gateway import IngestionPostgresGateway


class PostgresInstrumentReader(InstrumentReader):
    """
    PostgresInstrumentReader — reads preloaded instrument reference rows.

    Related:
      - alembic/versions/20261019_0001_ingestion_storage_v1.py
    """

    def __init__(
        self,
        *,
        gateway: IngestionPostgresGateway,
        instruments_table: str = "invest.instruments",
    ) -> None:
        if gateway is None:  # type: ignore[truthy-bool]
            raise ValueError("PostgresInstrumentReader requires gateway")
        normalized_table = instruments_table.strip()
        if not normalized_table:
            raise ValueError("PostgresInstrumentReader requires non-empty instruments_table")
        self._gateway = gateway
        self._table = normalized_table

    def list_instruments(
        self,
        classes: Collection[InstrumentClass] | None = None,
        currencies: Collection[str] | None = None,
    ) -> Sequence[Instrument]:
        """
        List instruments filtered by class and currency.

        Args:
            classes: Optional instrument class filter.
            currencies: Optional currency filter, case-insensitive.
        Returns:
            Sequence[Instrument]: Rows ordered by class then instrument id.
        Raises:
            Exception: Storage errors; without instruments no batch can run.
        Side Effects:
            Executes one SQL select statement.
        """
        query = f"""
        SELECT
            instrument_id,
            ticker,
            instrument_class,
            currency,
            exchange
        FROM {self._table}
        WHERE (%(classes)s::text[] IS NULL OR instrument_class = ANY(%(classes)s::text[]))
          AND (%(currencies)s::text[] IS NULL OR upper(currency) = ANY(%(currencies)s::text[]))
        ORDER BY instrument_class ASC, instrument_id ASC
        """
        rows = self._gateway.fetch_all(
            query=query,
            parameters={
                "classes": sorted(classes) if classes is not None else None,
                "currencies": (
                    sorted(item.upper() for item in currencies) if currencies is not None else None
                ),
            },
        )
        return tuple(_map_instrument_row(row=row) for row in rows)


def _map_instrument_row(*, row: Mapping[str, Any]) -> Instrument:
    return Instrument(
        instrument_id=InstrumentId(str(row["instrument_id"])),
        ticker=str(row["ticker"]),
        instrument_class=row["instrument_class"],
        currency=str(row["currency"] or ""),
        exchange=str(row["exchange"] or ""),
    )
