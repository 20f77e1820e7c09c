"""Exception hierarchy shared by the historical and live clients."""

from __future__ import annotations

from typing import Any, Mapping, Optional


class KlinesError(RuntimeError):
    """Base class for all client faults."""


class ApiError(KlinesError):
    """Exchange-level error reported as a ``{code, msg}`` body."""

    def __init__(self, code: Any, message: str):
        super().__init__(f"Binance API error {code}: {message}")
        self.code = code
        self.message = message


class TransportFault(KlinesError):
    """Parse failure, bad HTTP status or connection fault."""


def _is_error_shape(payload: Any) -> bool:
    return isinstance(payload, Mapping) and "code" in payload and "msg" in payload


def api_error_from_payload(payload: Any) -> Optional[ApiError]:
    """Return an ApiError if ``payload`` carries the exchange error shape.

    Accepts both the REST form ``{"code": -1121, "msg": "..."}`` and the
    websocket form ``{"error": {"code": 2, "msg": "..."}, "id": 0}``.
    """
    if _is_error_shape(payload):
        return ApiError(payload["code"], payload["msg"])
    if isinstance(payload, Mapping) and _is_error_shape(payload.get("error")):
        err = payload["error"]
        return ApiError(err["code"], err["msg"])
    return None
