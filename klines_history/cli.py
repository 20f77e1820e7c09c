from __future__ import annotations

import json
import logging
import os
from typing import Optional

from klines_core.errors import KlinesError
from klines_core.logging_config import setup_logging
from klines_core.settings import load_config
from klines_core.types import KlineQuery, supports_interval
from klines_history.client import HistoricalDataClient


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(name, default)


def _parse_ms(value: str) -> int:
    raw = int(value)
    if raw < 1_000_000_000_000:
        return raw * 1000
    return raw


def build_query() -> KlineQuery:
    symbol = _env("SYMBOL")
    interval = _env("INTERVAL")
    start_ms_raw = _env("START_MS")
    end_ms_raw = _env("END_MS")
    limit_raw = _env("LIMIT")

    if not symbol or not interval:
        raise SystemExit("SYMBOL and INTERVAL are required")
    if not supports_interval(interval):
        raise SystemExit(f"Unsupported INTERVAL: {interval}")

    start_ms = _parse_ms(start_ms_raw) if start_ms_raw else None
    end_ms = _parse_ms(end_ms_raw) if end_ms_raw else None
    if start_ms is not None and end_ms is not None and end_ms <= start_ms:
        raise SystemExit("END_MS must be greater than START_MS")

    return KlineQuery(
        symbol=symbol.upper(),
        interval=interval,
        start_time=start_ms,
        end_time=end_ms,
        limit=int(limit_raw) if limit_raw else None,
    )


def main() -> None:
    setup_logging(_env("LOG_LEVEL", "INFO"), component="history")
    log = logging.getLogger("klines.history.cli")

    query = build_query()
    config = load_config(_env("BINANCE_KLINES_CONFIG"))
    client = HistoricalDataClient(
        base_url=config.rest_base_url,
        klines_path=config.klines_path,
        timeout_s=config.http_timeout_s,
    )
    try:
        candles = client.candlesticks(query)
    except KlinesError as exc:
        log.error("Historical query failed: %s", exc)
        raise SystemExit(1) from exc

    for candle in candles:
        print(json.dumps(candle.as_dict()))
    log.info("Fetched %d candles for %s %s", len(candles), query.symbol, query.interval)


if __name__ == "__main__":
    main()
