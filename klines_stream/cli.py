from __future__ import annotations

import json
import logging
import os
import threading
from typing import List, Optional

from klines_core.errors import KlinesError
from klines_core.logging_config import setup_logging
from klines_core.types import Candle, supports_interval
from binance_public_data import BinancePublicData


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(name, default)


def _symbols(raw: Optional[str]) -> List[str]:
    return [s.strip() for s in (raw or "").split(",") if s.strip()]


def main() -> None:
    setup_logging(_env("LOG_LEVEL", "INFO"), component="stream")
    log = logging.getLogger("klines.stream.cli")

    symbols = _symbols(_env("SYMBOL"))
    interval = _env("INTERVAL", "1m")
    duration_raw = _env("DURATION_S")
    if not symbols:
        raise SystemExit("SYMBOL is required (comma separated for several)")
    if not supports_interval(interval):
        raise SystemExit(f"Unsupported INTERVAL: {interval}")
    duration_s = float(duration_raw) if duration_raw else None

    done = threading.Event()

    def on_error(exc: KlinesError) -> None:
        log.error("Live feed fault: %s", exc)

    def on_status(typ: str, details: dict) -> None:
        log.info("ws status %s %s", typ, details)
        if typ == "ws_session_end":
            done.set()

    client = BinancePublicData.from_config_file(
        _env("BINANCE_KLINES_CONFIG"), on_error=on_error, on_status=on_status, autostart=False
    )

    for symbol in symbols:

        def emit(candle: Candle, symbol: str = symbol) -> None:
            print(json.dumps({"symbol": symbol.upper(), "interval": interval, **candle.as_dict()}), flush=True)

        stream = client.websocket.candlesticks(symbol, interval, emit)
        log.info("Registered %s", stream)

    client.websocket.start()

    try:
        done.wait(timeout=duration_s)
    except KeyboardInterrupt:
        log.info("Interrupted")
    finally:
        client.close()


if __name__ == "__main__":
    main()
