from __future__ import annotations

from pathlib import Path

import pytest

from binance_public_data import BinancePublicData
from klines_core.settings import FeedConfig
from klines_core.types import KlineQuery


def _config() -> FeedConfig:
    return FeedConfig(
        endpoints=["https://api.binance.com", "https://api1.binance.com"],
        klines_path="/api/v3/klines",
        ws_endpoint="wss://stream.binance.com/ws",
        ws_port=9443,
    )


class _FakeResponse:
    status_code = 200

    def __init__(self, payload):
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self):
        return self._payload


def test_facade_wires_both_clients_without_connecting():
    client = BinancePublicData(_config(), autostart=False)

    assert client.endpoints[0] == "https://api.binance.com"
    assert client.history.klines_url == "https://api.binance.com/api/v3/klines"
    assert client.websocket.ws_url == "wss://stream.binance.com:9443/ws"
    assert client.websocket._thread is None


def test_facade_candlesticks_uses_first_endpoint(monkeypatch: pytest.MonkeyPatch):
    seen = {}

    def _get(url, params, timeout):
        seen["url"] = url
        seen["params"] = params
        return _FakeResponse([["1000", "1.1", "1.2", "1.0", "1.15", "10.5", "2000", "12.0", "5", "3.0", "3.5"]])

    monkeypatch.setattr("klines_history.client.requests.get", _get)
    client = BinancePublicData(_config(), autostart=False)
    candles = client.candlesticks(KlineQuery(symbol="BTCUSDT", interval="1m"))

    assert seen["url"] == "https://api.binance.com/api/v3/klines"
    assert seen["params"] == {"symbol": "BTCUSDT", "interval": "1m"}
    assert candles[0].close == 1.15


def test_facade_close_is_terminal_for_live_feed():
    with BinancePublicData(_config(), autostart=False) as client:
        client.websocket.candlesticks("BTCUSDT", "1m", lambda c: None)

    assert client.websocket.closed
    with pytest.raises(RuntimeError):
        client.websocket.candlesticks("ETHUSDT", "1m", lambda c: None)


def test_from_config_file(tmp_path: Path):
    path = tmp_path / "config.cfg"
    path.write_text(
        "endpoints = https://api.example.com\n"
        "klines = /api/v3/klines\n"
        "[websocket]\n"
        "endpoint = wss://stream.example.com/ws\n",
        encoding="utf-8",
    )
    client = BinancePublicData.from_config_file(path, autostart=False)

    assert client.history.klines_url == "https://api.example.com/api/v3/klines"
    assert client.websocket.ws_url == "wss://stream.example.com/ws"
