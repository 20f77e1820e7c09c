from .ws_stream import KlineWSStream

__all__ = ["KlineWSStream"]
