from .aggregation_refresher import AggregationRefresher
from .candle_store import CandleStore
from .idempotent_store import IdempotentStore
from .instrument_reader import InstrumentReader
from .session_price_store import SessionPriceStore
from .task_registry import TaskRegistry
from .trade_store import TradeStore

__all__ = [
    "AggregationRefresher",
    "CandleStore",
    "IdempotentStore",
    "InstrumentReader",
    "SessionPriceStore",
    "TaskRegistry",
    "TradeStore",
]
