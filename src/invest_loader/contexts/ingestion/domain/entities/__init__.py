from .candle import Candle
from .ingestion_task import TERMINAL_TASK_STATUSES, IngestionTask, TaskStatus
from .instrument import INSTRUMENT_CLASSES, Instrument, InstrumentClass
from .put_result import INSERTED, SKIPPED_EXISTING, PutResult
from .session_price import SESSION_KINDS, SessionKind, SessionPrice
from .trade import Trade, TradeDirection
from .trading_day import TradingDay

__all__ = [
    "Candle",
    "INSERTED",
    "INSTRUMENT_CLASSES",
    "IngestionTask",
    "Instrument",
    "InstrumentClass",
    "PutResult",
    "SESSION_KINDS",
    "SKIPPED_EXISTING",
    "SessionKind",
    "SessionPrice",
    "TERMINAL_TASK_STATUSES",
    "TaskStatus",
    "Trade",
    "TradeDirection",
    "TradingDay",
]
