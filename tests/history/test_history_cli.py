from __future__ import annotations

import json
from pathlib import Path

import pytest

import klines_history.cli as cli_mod


class _FakeResponse:
    status_code = 200

    def __init__(self, payload):
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self):
        return self._payload


def _write_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.cfg"
    path.write_text(
        "[DEFAULT]\n"
        "endpoints = https://api.example.com https://api2.example.com\n"
        "klines = /api/v3/klines\n"
        "[websocket]\n"
        "endpoint = wss://stream.example.com/ws\n"
        "port = 9443\n",
        encoding="utf-8",
    )
    return path


def test_history_cli_prints_ndjson(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("BINANCE_KLINES_CONFIG", str(_write_config(tmp_path)))
    monkeypatch.setenv("SYMBOL", "btcusdt")
    monkeypatch.setenv("INTERVAL", "1h")
    monkeypatch.setenv("START_MS", "1700000000")
    monkeypatch.setenv("LIMIT", "1")

    seen = {}

    def _get(url, params, timeout):
        seen["url"] = url
        seen["params"] = params
        return _FakeResponse([["1000", "1.1", "1.2", "1.0", "1.15", "10.5", "2000", "12.0", "5", "3.0", "3.5"]])

    monkeypatch.setattr("klines_history.client.requests.get", _get)
    cli_mod.main()

    assert seen["url"] == "https://api.example.com/api/v3/klines"
    assert seen["params"] == {"symbol": "BTCUSDT", "interval": "1h", "startTime": 1700000000000, "limit": 1}
    lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
    assert json.loads(lines[0])["numberOfTrades"] == 5


def test_history_cli_requires_symbol(monkeypatch):
    monkeypatch.delenv("SYMBOL", raising=False)
    monkeypatch.setenv("INTERVAL", "1m")
    with pytest.raises(SystemExit):
        cli_mod.build_query()


def test_history_cli_rejects_reversed_window(monkeypatch):
    monkeypatch.setenv("SYMBOL", "BTCUSDT")
    monkeypatch.setenv("INTERVAL", "1m")
    monkeypatch.setenv("START_MS", "1700000060000")
    monkeypatch.setenv("END_MS", "1700000000000")
    with pytest.raises(SystemExit):
        cli_mod.build_query()
