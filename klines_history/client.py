from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Union

import requests

from klines_core.errors import TransportFault, api_error_from_payload
from klines_core.normalizer import candle_from_row
from klines_core.settings import HTTP_TIMEOUT_S
from klines_core.types import Candle, KlineQuery


_BINANCE_REST = "https://api.binance.com"
_KLINES_PATH = "/api/v3/klines"

QueryLike = Union[KlineQuery, Mapping[str, Any]]


def query_params(query: Optional[QueryLike]) -> dict:
    if query is None:
        return {}
    if isinstance(query, KlineQuery):
        return query.to_params()
    return {k: v for k, v in query.items() if v is not None}


class HistoricalDataClient:
    """One GET per query against the klines endpoint; no retry, no pagination."""

    def __init__(
        self,
        base_url: str = _BINANCE_REST,
        klines_path: str = _KLINES_PATH,
        timeout_s: float = HTTP_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.klines_path = klines_path
        self.timeout_s = float(timeout_s)
        self._http = session if session is not None else requests
        self._log = logging.getLogger("klines.history")

    @property
    def klines_url(self) -> str:
        return f"{self.base_url}{self.klines_path}"

    def _request(self, url: str, params: dict) -> Any:
        try:
            resp = self._http.get(url, params=params, timeout=self.timeout_s)
        except requests.RequestException as exc:
            raise TransportFault(f"GET {url} failed: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            try:
                resp.raise_for_status()
            except requests.HTTPError as http_exc:
                raise TransportFault(f"GET {url} failed: {http_exc}") from http_exc
            raise TransportFault(f"GET {url} returned a non-JSON body") from exc

        # The exchange reports errors as a {code, msg} body, whatever the status.
        api_error = api_error_from_payload(payload)
        if api_error is not None:
            self._log.warning("API error from %s: code=%s msg=%s", url, api_error.code, api_error.message)
            raise api_error

        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            raise TransportFault(f"GET {url} failed: {exc}") from exc
        return payload

    def candlesticks(self, query: Optional[QueryLike] = None) -> List[Candle]:
        params = query_params(query)
        url = self.klines_url
        payload = self._request(url, params)
        if not isinstance(payload, list):
            raise TransportFault(f"Unexpected klines payload type: {type(payload).__name__}")

        candles: List[Candle] = []
        for row in payload:
            try:
                candles.append(candle_from_row(row))
            except (TypeError, ValueError) as exc:
                raise TransportFault(f"Malformed kline row: {row!r}") from exc
        self._log.debug("Fetched %d candles (params=%s)", len(candles), params)
        return candles
