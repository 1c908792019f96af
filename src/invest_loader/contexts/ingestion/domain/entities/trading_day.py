from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True, slots=True)
class TradingDay:
    """One row of an exchange trading schedule."""

    exchange: str
    day: date
    is_trading_day: bool
