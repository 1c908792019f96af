from .entities import (
    INSERTED,
    INSTRUMENT_CLASSES,
    SESSION_KINDS,
    SKIPPED_EXISTING,
    Candle,
    IngestionTask,
    Instrument,
    InstrumentClass,
    PutResult,
    SessionKind,
    SessionPrice,
    TaskStatus,
    Trade,
    TradingDay,
)
from .errors import (
    NonTradingDay,
    PersistenceConflict,
    PipelineFailure,
    RateLimitExceeded,
    TaskRegistryError,
    UnknownTrigger,
    UpstreamFetchError,
    ValidationError,
)

__all__ = [
    "Candle",
    "INSERTED",
    "INSTRUMENT_CLASSES",
    "IngestionTask",
    "Instrument",
    "InstrumentClass",
    "NonTradingDay",
    "PersistenceConflict",
    "PipelineFailure",
    "PutResult",
    "RateLimitExceeded",
    "SESSION_KINDS",
    "SKIPPED_EXISTING",
    "SessionKind",
    "SessionPrice",
    "TaskRegistryError",
    "TaskStatus",
    "Trade",
    "TradingDay",
    "UnknownTrigger",
    "UpstreamFetchError",
    "ValidationError",
]
