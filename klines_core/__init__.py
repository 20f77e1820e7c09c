"""Shared data structures, errors and settings for the kline clients."""

from .errors import ApiError, KlinesError, TransportFault
from .settings import FeedConfig, load_config
from .types import KLINE_INTERVALS, Candle, KlineQuery, stream_name

__all__ = [
    "ApiError",
    "Candle",
    "FeedConfig",
    "KLINE_INTERVALS",
    "KlineQuery",
    "KlinesError",
    "TransportFault",
    "load_config",
    "stream_name",
]
