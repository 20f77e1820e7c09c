from __future__ import annotations

import math
import re
from typing import Any, Mapping, Sequence

from klines_core.types import Candle


_ROW_WIDTH = 11
_INT_RE = re.compile(r"^[+-]?\d+$")
_JS_INFINITY = {"Infinity": math.inf, "+Infinity": math.inf, "-Infinity": -math.inf}


def to_float(value: Any) -> float:
    """Coerce like a JS unary plus.

    Blank strings are 0, ``Infinity`` keeps its JS spelling, and digit
    separators or Python-only spellings (``inf``, ``nan``) are NaN, as is
    anything else that does not parse. ``None`` is NaN.
    """
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if text in _JS_INFINITY:
            return _JS_INFINITY[text]
        if "_" in text or text.lstrip("+-")[:1].isalpha():
            return math.nan
        value = text
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def to_int(value: Any) -> int | float:
    """Integer fields (epoch ms, trade counts). Non-integral input falls back to ``to_float``."""
    if isinstance(value, int):
        return int(value)
    if isinstance(value, str) and _INT_RE.match(value.strip()):
        return int(value.strip())
    num = to_float(value)
    if math.isfinite(num) and num.is_integer():
        return int(num)
    return num


def candle_from_row(row: Sequence[Any]) -> Candle:
    """Map one REST kline array (11+ positional slots) to a Candle."""
    if not isinstance(row, (list, tuple)):
        raise ValueError(f"Kline row is a {type(row).__name__}, expected an array")
    if len(row) < _ROW_WIDTH:
        raise ValueError(f"Kline row has {len(row)} fields, expected {_ROW_WIDTH}")
    return Candle(
        open_time=to_int(row[0]),
        open=to_float(row[1]),
        high=to_float(row[2]),
        low=to_float(row[3]),
        close=to_float(row[4]),
        volume=to_float(row[5]),
        close_time=to_int(row[6]),
        quote_asset_volume=to_float(row[7]),
        number_of_trades=to_int(row[8]),
        taker_buy_base_asset_volume=to_float(row[9]),
        taker_buy_quote_asset_volume=to_float(row[10]),
    )


def candle_from_ws_kline(k: Mapping[str, Any]) -> Candle:
    """Map the ``k`` object of a websocket kline event to a Candle.

    Raises KeyError when a required field is missing.
    """
    return Candle(
        open_time=to_int(k["t"]),
        open=to_float(k["o"]),
        high=to_float(k["h"]),
        low=to_float(k["l"]),
        close=to_float(k["c"]),
        volume=to_float(k["v"]),
        close_time=to_int(k["T"]),
        quote_asset_volume=to_float(k["q"]),
        number_of_trades=to_int(k["n"]),
        taker_buy_base_asset_volume=to_float(k["V"]),
        taker_buy_quote_asset_volume=to_float(k["Q"]),
    )
