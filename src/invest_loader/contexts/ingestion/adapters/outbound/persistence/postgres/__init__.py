from .aggregation_refresher import PostgresAggregationRefresher
from .candle_store import PostgresCandleStore
from .gateway import IngestionPostgresGateway, PsycopgIngestionPostgresGateway
from .instrument_reader import PostgresInstrumentReader
from .session_price_store import PostgresSessionPriceStore
from .task_registry import PostgresTaskRegistry
from .trade_store import PostgresTradeStore

__all__ = [
    "IngestionPostgresGateway",
    "PostgresAggregationRefresher",
    "PostgresCandleStore",
    "PostgresInstrumentReader",
    "PostgresSessionPriceStore",
    "PostgresTaskRegistry",
    "PostgresTradeStore",
    "PsycopgIngestionPostgresGateway",
]
