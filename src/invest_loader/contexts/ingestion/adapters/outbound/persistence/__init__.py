from .in_memory import (
    InMemoryAggregationRefresher,
    InMemoryCandleStore,
    InMemoryInstrumentReader,
    InMemorySessionPriceStore,
    InMemoryTaskRegistry,
    InMemoryTradeStore,
)
from .postgres import (
    IngestionPostgresGateway,
    PostgresAggregationRefresher,
    PostgresCandleStore,
    PostgresInstrumentReader,
    PostgresSessionPriceStore,
    PostgresTaskRegistry,
    PostgresTradeStore,
    PsycopgIngestionPostgresGateway,
)

__all__ = [
    "InMemoryAggregationRefresher",
    "InMemoryCandleStore",
    "InMemoryInstrumentReader",
    "InMemorySessionPriceStore",
    "InMemoryTaskRegistry",
    "InMemoryTradeStore",
    "IngestionPostgresGateway",
    "PostgresAggregationRefresher",
    "PostgresCandleStore",
    "PostgresInstrumentReader",
    "PostgresSessionPriceStore",
    "PostgresTaskRegistry",
    "PostgresTradeStore",
    "PsycopgIngestionPostgresGateway",
]
