from __future__ import annotations

from invest_loader.contexts.ingestion.application.ports.stores import TradeStore
from invest_loader.contexts.ingestion.domain import PutResult, Trade

from .gateway import IngestionPostgresGateway
from .idempotent_insert import insert_if_absent


class PostgresTradeStore(TradeStore):
    """PostgresTradeStore — last trades keyed by `(instrument_id, ts)`."""

    def __init__(
        self,
        *,
        gateway: IngestionPostgresGateway,
        trades_table: str = "invest.last_trades",
    ) -> None:
        if gateway is None:  # type: ignore[truthy-bool]
            raise ValueError("PostgresTradeStore requires gateway")
        normalized_table = trades_table.strip()
        if not normalized_table:
            raise ValueError("PostgresTradeStore requires non-empty trades_table")
        self._gateway = gateway
        self._table = normalized_table

    def put_if_absent(self, record: Trade) -> PutResult:
        query = f"""
        INSERT INTO {self._table}
        (
            instrument_id,
            ts,
            price,
            quantity,
            direction,
            exchange
        )
        VALUES
        (
            %(instrument_id)s,
            %(ts)s,
            %(price)s,
            %(quantity)s,
            %(direction)s,
            %(exchange)s
        )
        ON CONFLICT (instrument_id, ts) DO NOTHING
        RETURNING instrument_id
        """
        return insert_if_absent(
            gateway=self._gateway,
            query=query,
            parameters={
                "instrument_id": record.instrument_id.value,
                "ts": record.ts.value,
                "price": record.price,
                "quantity": record.quantity,
                "direction": record.direction,
                "exchange": record.exchange,
            },
            key=":".join(record.key),
        )
