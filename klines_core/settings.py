from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlsplit, urlunsplit


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y")


DEFAULT_CONFIG_PATH = "./config.cfg"

HTTP_TIMEOUT_S = _env_float("HTTP_TIMEOUT_S", 10.0)

# WS keepalive/timeouts
WS_PING_INTERVAL_S = _env_int("WS_PING_INTERVAL_S", 20)
WS_PING_TIMEOUT_S = _env_int("WS_PING_TIMEOUT_S", 60)
WS_OPEN_TIMEOUT_S = _env_float("WS_OPEN_TIMEOUT_S", 10.0)
WS_CLOSE_TIMEOUT_S = _env_float("WS_CLOSE_TIMEOUT_S", 5.0)
WS_RECV_POLL_TIMEOUT_S = _env_float("WS_RECV_POLL_TIMEOUT_S", 5.0)

# TLS verification should remain enabled by default.
INSECURE_TLS = _env_bool("INSECURE_TLS", False)


@dataclass(frozen=True)
class FeedConfig:
    """Endpoints for both acquisition paths.

    ``endpoints`` keeps every configured REST base URL but only the first is
    used. ``ws_port`` is merged into ``ws_endpoint`` unless the endpoint
    already names a port.
    """

    endpoints: List[str]
    klines_path: str
    ws_endpoint: str
    ws_port: Optional[int] = None
    http_timeout_s: float = field(default_factory=lambda: HTTP_TIMEOUT_S)

    @property
    def rest_base_url(self) -> str:
        if not self.endpoints:
            raise ValueError("No REST endpoints configured")
        return self.endpoints[0].rstrip("/")

    @property
    def ws_url(self) -> str:
        parts = urlsplit(self.ws_endpoint)
        if self.ws_port is None or parts.port is not None or not parts.hostname:
            return self.ws_endpoint
        netloc = f"{parts.netloc}:{self.ws_port}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def _require(parser: configparser.ConfigParser, section: str, key: str) -> str:
    try:
        return parser.get(section, key)
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise ValueError(f"Missing config option [{section}] {key}") from exc


def parse_config(text: str) -> FeedConfig:
    """Parse the INI text: ``endpoints``/``klines`` in DEFAULT, ``endpoint``/``port`` in [websocket]."""
    parser = configparser.ConfigParser()
    try:
        parser.read_string(text)
    except configparser.MissingSectionHeaderError:
        # Leading keys without a header belong to the default section.
        parser = configparser.ConfigParser()
        parser.read_string(f"[{configparser.DEFAULTSECT}]\n{text}")

    endpoints_raw = parser.defaults().get("endpoints")
    if endpoints_raw is None:
        raise ValueError("Missing config option [DEFAULT] endpoints")
    klines_path = parser.defaults().get("klines")
    if klines_path is None:
        raise ValueError("Missing config option [DEFAULT] klines")

    ws_endpoint = _require(parser, "websocket", "endpoint")
    port_raw = parser.get("websocket", "port", fallback="").strip()
    try:
        ws_port = int(port_raw) if port_raw else None
    except ValueError as exc:
        raise ValueError(f"Invalid websocket port: {port_raw!r}") from exc

    return FeedConfig(
        endpoints=endpoints_raw.split(),
        klines_path=klines_path.strip(),
        ws_endpoint=ws_endpoint.strip(),
        ws_port=ws_port,
    )


def load_config(path: str | Path | None = None) -> FeedConfig:
    path = Path(path or os.getenv("BINANCE_KLINES_CONFIG", DEFAULT_CONFIG_PATH))
    return parse_config(path.read_text(encoding="utf-8"))
