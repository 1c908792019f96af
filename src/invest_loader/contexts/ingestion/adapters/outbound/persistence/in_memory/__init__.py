from .aggregation_refresher import InMemoryAggregationRefresher
from .candle_store import InMemoryCandleStore
from .instrument_reader import InMemoryInstrumentReader
from .session_price_store import InMemorySessionPriceStore
from .task_registry import InMemoryTaskRegistry
from .trade_store import InMemoryTradeStore

__all__ = [
    "InMemoryAggregationRefresher",
    "InMemoryCandleStore",
    "InMemoryInstrumentReader",
    "InMemorySessionPriceStore",
    "InMemoryTaskRegistry",
    "InMemoryTradeStore",
]
