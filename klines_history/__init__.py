from .client import HistoricalDataClient

__all__ = ["HistoricalDataClient"]
