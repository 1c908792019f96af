"""
Shared Kernel primitives.

This package re-exports the minimal set of value types so that other
modules can import them from one place:

    from invest_loader.shared_kernel.primitives import InstrumentId, TimeRange, UtcTimestamp
"""

from .candle_interval import CandleInterval
from .instrument_id import InstrumentId
from .time_range import TimeRange
from .utc_timestamp import UtcTimestamp

__all__ = [
    "CandleInterval",
    "InstrumentId",
    "TimeRange",
    "UtcTimestamp",
]
