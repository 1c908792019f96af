from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from invest_loader.shared_kernel.primitives import InstrumentId, UtcTimestamp

TradeDirection = Literal["buy", "sell", "unspecified"]


@dataclass(frozen=True, slots=True)
class Trade:
    """
    Trade — one anonymous last trade reported by the provider.

    Natural key: `(instrument_id, ts)`.
    """

    instrument_id: InstrumentId
    ts: UtcTimestamp
    price: float
    quantity: int
    direction: TradeDirection
    exchange: str

    def __post_init__(self) -> None:
        if self.direction not in ("buy", "sell", "unspecified"):
            raise ValueError(f"Trade.direction is unsupported: {self.direction!r}")

    @property
    def key(self) -> tuple[str, str]:
        return (self.instrument_id.value, str(self.ts))

    def validation_problem(self) -> str | None:
        if self.price <= 0:
            return "trade has non-positive price"
        if self.quantity < 0:
            return "trade has negative quantity"
        return None
