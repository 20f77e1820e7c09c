from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


KLINE_INTERVALS = (
    "1m",
    "3m",
    "5m",
    "15m",
    "30m",
    "1h",
    "2h",
    "4h",
    "6h",
    "8h",
    "12h",
    "1d",
    "3d",
    "1w",
    "1M",
)


def supports_interval(interval: str) -> bool:
    return interval in KLINE_INTERVALS


def stream_name(instrument: str, interval: str) -> str:
    """Canonical live stream id, e.g. ``btcusdt@kline_1m``."""
    if not supports_interval(interval):
        raise ValueError(f"Unsupported kline interval: {interval}")
    return f"{instrument.lower()}@kline_{interval}"


@dataclass(frozen=True)
class Candle:
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: int
    quote_asset_volume: float
    number_of_trades: int
    taker_buy_base_asset_volume: float
    taker_buy_quote_asset_volume: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "openTime": self.open_time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "closeTime": self.close_time,
            "quoteAssetVolume": self.quote_asset_volume,
            "numberOfTrades": self.number_of_trades,
            "takerBuyBaseAssetVolume": self.taker_buy_base_asset_volume,
            "takerBuyQuoteAssetVolume": self.taker_buy_quote_asset_volume,
        }


@dataclass(frozen=True)
class KlineQuery:
    symbol: Optional[str] = None
    interval: Optional[str] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    limit: Optional[int] = None

    def to_params(self) -> Dict[str, Any]:
        params = {
            "symbol": self.symbol,
            "interval": self.interval,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "limit": self.limit,
        }
        return {k: v for k, v in params.items() if v is not None}
