from .derive_session_prices import (
    DEFAULT_SESSION_CUTOFFS,
    DeriveSessionPricesUseCase,
    SessionCutoffs,
)
from .load_candles import CANDLES_OPERATION_CLASS, LoadCandlesUseCase
from .load_last_trades import LAST_TRADES_OPERATION_CLASS, LoadLastTradesUseCase
from .refresh_volume_aggregation import RefreshVolumeAggregationUseCase

__all__ = [
    "CANDLES_OPERATION_CLASS",
    "DEFAULT_SESSION_CUTOFFS",
    "DeriveSessionPricesUseCase",
    "LAST_TRADES_OPERATION_CLASS",
    "LoadCandlesUseCase",
    "LoadLastTradesUseCase",
    "RefreshVolumeAggregationUseCase",
    "SessionCutoffs",
]
