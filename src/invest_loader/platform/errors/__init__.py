from .invest_loader_error import InvestLoaderError

__all__ = ["InvestLoaderError"]
