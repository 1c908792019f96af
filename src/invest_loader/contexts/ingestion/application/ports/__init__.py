"""
Application layer ports for the ingestion bounded context.

Ports define external dependencies used by use-cases and services.
"""

from .clock import Clock
from .sources import MarketDataSource
from .stores import (
    AggregationRefresher,
    CandleStore,
    IdempotentStore,
    InstrumentReader,
    SessionPriceStore,
    TaskRegistry,
    TradeStore,
)

__all__ = [
    "AggregationRefresher",
    "CandleStore",
    "Clock",
    "IdempotentStore",
    "InstrumentReader",
    "MarketDataSource",
    "SessionPriceStore",
    "TaskRegistry",
    "TradeStore",
]
