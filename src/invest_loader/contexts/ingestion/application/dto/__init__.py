from .batch_summary import (
    AggregationRefreshReport,
    BatchSummary,
    CandleLoadReport,
    SessionPriceReport,
    TradeLoadReport,
)
from .fetch_outcome import Error, FetchOutcome, InstrumentReport, NoData, Success
from .gate import GateStats, Permit
from .trigger_run import DispatchAck, TriggerRun

__all__ = [
    "AggregationRefreshReport",
    "BatchSummary",
    "CandleLoadReport",
    "DispatchAck",
    "Error",
    "FetchOutcome",
    "GateStats",
    "InstrumentReport",
    "NoData",
    "Permit",
    "SessionPriceReport",
    "Success",
    "TradeLoadReport",
    "TriggerRun",
]
