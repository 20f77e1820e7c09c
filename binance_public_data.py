"""Facade over the historical (REST) and live (websocket) kline clients."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional

from klines_core.errors import KlinesError
from klines_core.settings import (
    INSECURE_TLS,
    WS_CLOSE_TIMEOUT_S,
    WS_OPEN_TIMEOUT_S,
    WS_PING_INTERVAL_S,
    WS_PING_TIMEOUT_S,
    WS_RECV_POLL_TIMEOUT_S,
    FeedConfig,
    load_config,
)
from klines_core.types import Candle
from klines_history.client import HistoricalDataClient, QueryLike
from klines_stream.ws_stream import KlineWSStream


class BinancePublicData:
    """Entry point: ``candlesticks(query)`` for history, ``websocket.candlesticks(...)`` for live data.

    Building the facade does not touch the network; the websocket connects on
    the first live subscription (unless ``autostart=False``).
    """

    def __init__(
        self,
        config: FeedConfig,
        *,
        on_error: Optional[Callable[[KlinesError], None]] = None,
        on_status: Optional[Callable[[str, dict], None]] = None,
        autostart: bool = True,
    ):
        self.config = config
        self.endpoints = list(config.endpoints)
        self.klines_path = config.klines_path
        self.history = HistoricalDataClient(
            base_url=config.rest_base_url,
            klines_path=config.klines_path,
            timeout_s=config.http_timeout_s,
        )
        self.websocket = KlineWSStream(
            ws_url=config.ws_url,
            on_error=on_error,
            on_status=on_status,
            insecure_tls=INSECURE_TLS,
            ping_interval_s=WS_PING_INTERVAL_S,
            ping_timeout_s=WS_PING_TIMEOUT_S,
            open_timeout_s=WS_OPEN_TIMEOUT_S,
            close_timeout_s=WS_CLOSE_TIMEOUT_S,
            recv_poll_timeout_s=WS_RECV_POLL_TIMEOUT_S,
            autostart=autostart,
        )

    @classmethod
    def from_config_file(cls, path: str | Path | None = None, **kwargs) -> "BinancePublicData":
        return cls(load_config(path), **kwargs)

    def candlesticks(self, query: Optional[QueryLike] = None) -> List[Candle]:
        return self.history.candlesticks(query)

    def close(self) -> None:
        self.websocket.close()

    def __enter__(self) -> "BinancePublicData":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
