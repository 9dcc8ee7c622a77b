from .binance import BinanceCapitalFlowSource
from .interfaces import BaseDataSource

__all__ = ["BaseDataSource", "BinanceCapitalFlowSource"]
