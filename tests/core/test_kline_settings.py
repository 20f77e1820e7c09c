from __future__ import annotations

import importlib
from pathlib import Path

import pytest

from klines_core.settings import FeedConfig, load_config, parse_config


_CONFIG = """\
[DEFAULT]
endpoints = https://api.binance.com https://api1.binance.com
klines = /api/v3/klines

[websocket]
endpoint = wss://stream.binance.com/ws
port = 9443
"""


def test_parse_config_reads_sections():
    config = parse_config(_CONFIG)
    assert config.endpoints == ["https://api.binance.com", "https://api1.binance.com"]
    assert config.rest_base_url == "https://api.binance.com"
    assert config.klines_path == "/api/v3/klines"
    assert config.ws_endpoint == "wss://stream.binance.com/ws"
    assert config.ws_port == 9443
    assert config.ws_url == "wss://stream.binance.com:9443/ws"


def test_parse_config_accepts_headerless_defaults():
    text = _CONFIG.replace("[DEFAULT]\n", "")
    config = parse_config(text)
    assert config.rest_base_url == "https://api.binance.com"
    assert config.klines_path == "/api/v3/klines"


def test_ws_url_keeps_explicit_port():
    config = FeedConfig(
        endpoints=["https://api.binance.com"],
        klines_path="/api/v3/klines",
        ws_endpoint="wss://stream.binance.com:443/ws",
        ws_port=9443,
    )
    assert config.ws_url == "wss://stream.binance.com:443/ws"


def test_missing_websocket_section_is_reported():
    text = "[DEFAULT]\nendpoints = https://api.binance.com\nklines = /api/v3/klines\n"
    with pytest.raises(ValueError, match="websocket"):
        parse_config(text)


def test_missing_klines_path_is_reported():
    text = "[DEFAULT]\nendpoints = https://api.binance.com\n[websocket]\nendpoint = wss://x/ws\n"
    with pytest.raises(ValueError, match="klines"):
        parse_config(text)


def test_load_config_uses_env_path(tmp_path: Path, monkeypatch):
    path = tmp_path / "custom.cfg"
    path.write_text(_CONFIG, encoding="utf-8")
    monkeypatch.setenv("BINANCE_KLINES_CONFIG", str(path))
    assert load_config().klines_path == "/api/v3/klines"


def test_invalid_env_does_not_crash(monkeypatch):
    monkeypatch.setenv("WS_PING_INTERVAL_S", "not-a-number")
    monkeypatch.setenv("HTTP_TIMEOUT_S", "nope")
    monkeypatch.setenv("INSECURE_TLS", "maybe")

    import klines_core.settings as settings_mod

    importlib.reload(settings_mod)
    try:
        assert settings_mod.WS_PING_INTERVAL_S == 20
        assert settings_mod.HTTP_TIMEOUT_S == 10.0
        assert settings_mod.INSECURE_TLS is False
    finally:
        monkeypatch.undo()
        importlib.reload(settings_mod)


def test_setup_logging_console_goes_to_stderr(tmp_path: Path):
    import logging
    import sys

    from klines_core.logging_config import setup_logging

    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        log_path = setup_logging("DEBUG", component="history", base_dir=tmp_path)
        assert log_path.parent == tmp_path / "history" / "default"
        consoles = [h for h in root.handlers if type(h) is logging.StreamHandler]
        assert len(consoles) == 1
        assert consoles[0].stream is sys.stderr
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
