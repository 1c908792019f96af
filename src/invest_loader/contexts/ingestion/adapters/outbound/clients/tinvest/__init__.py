from .tinvest_market_data_source import TInvestMarketDataSource, quotation_to_float

__all__ = [
    "TInvestMarketDataSource",
    "quotation_to_float",
]
