from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Sequence

from invest_loader.contexts.ingestion.application.ports.stores import SessionPriceStore
from invest_loader.contexts.ingestion.domain import PutResult, SessionKind, SessionPrice
from invest_loader.shared_kernel.primitives import InstrumentId

from .gateway import IngestionPostgresGateway
from .idempotent_insert import insert_if_absent


class PostgresSessionPriceStore(SessionPriceStore):
    """
    PostgresSessionPriceStore — one row per `(instrument_id, trade_date, session_kind)`.

    Related:
      - src/invest_loader/contexts/ingestion/application/use_cases/derive_session_prices.py
      - alembic/versions/20261019_0001_ingestion_storage_v1.py
    """

    def __init__(
        self,
        *,
        gateway: IngestionPostgresGateway,
        session_prices_table: str = "invest.session_prices",
    ) -> None:
        if gateway is None:  # type: ignore[truthy-bool]
            raise ValueError("PostgresSessionPriceStore requires gateway")
        normalized_table = session_prices_table.strip()
        if not normalized_table:
            raise ValueError("PostgresSessionPriceStore requires non-empty session_prices_table")
        self._gateway = gateway
        self._table = normalized_table

    def put_if_absent(self, record: SessionPrice) -> PutResult:
        query = f"""
        INSERT INTO {self._table}
        (
            instrument_id,
            trade_date,
            session_kind,
            price,
            currency,
            exchange,
            instrument_class
        )
        VALUES
        (
            %(instrument_id)s,
            %(trade_date)s,
            %(session_kind)s,
            %(price)s,
            %(currency)s,
            %(exchange)s,
            %(instrument_class)s
        )
        ON CONFLICT (instrument_id, trade_date, session_kind) DO NOTHING
        RETURNING instrument_id
        """
        return insert_if_absent(
            gateway=self._gateway,
            query=query,
            parameters={
                "instrument_id": record.instrument_id.value,
                "trade_date": record.trade_date,
                "session_kind": record.kind,
                "price": record.price,
                "currency": record.currency,
                "exchange": record.exchange,
                "instrument_class": record.instrument_class,
            },
            key=":".join(record.key),
        )

    def list_session_prices(self, trade_date: date, kind: SessionKind) -> Sequence[SessionPrice]:
        query = f"""
        SELECT
            instrument_id,
            trade_date,
            session_kind,
            price,
            currency,
            exchange,
            instrument_class
        FROM {self._table}
        WHERE trade_date = %(trade_date)s
          AND session_kind = %(session_kind)s
        ORDER BY instrument_id ASC
        """
        rows = self._gateway.fetch_all(
            query=query,
            parameters={"trade_date": trade_date, "session_kind": kind},
        )
        return tuple(_map_session_price_row(row=row) for row in rows)


def _map_session_price_row(*, row: Mapping[str, Any]) -> SessionPrice:
    return SessionPrice(
        instrument_id=InstrumentId(str(row["instrument_id"])),
        trade_date=row["trade_date"],
        kind=row["session_kind"],
        price=float(row["price"]),
        currency=str(row["currency"]),
        exchange=str(row["exchange"]),
        instrument_class=row["instrument_class"],
    )
