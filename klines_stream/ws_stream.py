import asyncio
import contextlib
import json
import logging
import os
import ssl
import threading
from typing import Callable, Dict, List, Optional, Set

from websockets.asyncio.client import connect as ws_connect  # type: ignore
from websockets.exceptions import ConnectionClosed  # type: ignore

from klines_core.errors import KlinesError, TransportFault, api_error_from_payload
from klines_core.normalizer import candle_from_ws_kline
from klines_core.types import Candle, stream_name

CandleCallback = Callable[[Candle], None]


class KlineWSStream:
    """Single websocket connection delivering closed klines to per-stream callbacks.

    The connection runs on its own asyncio loop (``start()`` puts it on a
    daemon thread). Subscription state is shared with caller threads under
    ``_lock``; every outbound frame is sent from the loop.
    There is no reconnect: once the session ends the stream is finished.
    """

    def __init__(
        self,
        ws_url: str,
        on_error: Optional[Callable[[KlinesError], None]] = None,
        on_status: Optional[Callable[[str, dict], None]] = None,
        insecure_tls: bool = False,
        ping_interval_s: int = 20,
        ping_timeout_s: int = 60,
        open_timeout_s: float = 10.0,
        close_timeout_s: float = 5.0,
        recv_poll_timeout_s: float = 5.0,
        max_queue: int = 256,
        autostart: bool = True,
    ):
        self.ws_url = ws_url
        self.on_error_cb = on_error
        self.on_status_cb = on_status
        self.insecure_tls = insecure_tls
        self.autostart = autostart

        self.ping_interval_s = max(0, int(ping_interval_s))
        self.ping_timeout_s = max(1, int(ping_timeout_s))
        self.open_timeout_s = max(0.1, float(open_timeout_s))
        self.close_timeout_s = max(0.1, float(close_timeout_s))
        self.recv_poll_timeout_s = max(0.01, float(recv_poll_timeout_s))
        self.max_queue = max(1, int(max_queue))

        self._lock = threading.Lock()
        self._subscriptions: List[str] = []
        self._pending: List[str] = []
        self._callbacks: Dict[str, List[CandleCallback]] = {}
        self._connected = False
        self._closed = False
        self._session_ended = False
        self._closing: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

        self._ws = None
        self._stop = False
        self._log = logging.getLogger("klines.websocket")
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def subscriptions(self) -> List[str]:
        with self._lock:
            return list(self._subscriptions)

    @property
    def closed(self) -> bool:
        return self._closed

    def _emit_status(self, typ: str, details: dict) -> None:
        try:
            if self.on_status_cb:
                self.on_status_cb(typ, details)
        except Exception:
            self._log.exception("Status callback error (type=%s)", typ)

    def _emit_error(self, exc: KlinesError) -> None:
        if self.on_error_cb is None:
            self._log.error("%s: %s", type(exc).__name__, exc)
            return
        try:
            self.on_error_cb(exc)
        except Exception:
            self._log.exception("Error callback failed (%s)", type(exc).__name__)

    def candlesticks(self, instrument: str, interval: str, callback: CandleCallback) -> str:
        """Deliver every closed ``instrument``/``interval`` candle to ``callback``.

        Returns the stream id. Registering the same pair again adds another
        callback but never a second SUBSCRIBE frame.
        """
        stream = stream_name(instrument, interval)
        send_now = False
        with self._lock:
            if self._closed:
                raise RuntimeError("KlineWSStream is closed")
            ended = self._session_ended
            if not ended:
                self._callbacks.setdefault(stream, []).append(callback)
                if stream not in self._subscriptions and stream not in self._pending:
                    if self._connected:
                        self._subscriptions.append(stream)
                        send_now = True
                    else:
                        self._pending.append(stream)
            start = not ended and self.autostart and self._thread is None and self._loop is None

        if ended:
            # No reconnect: a finished session never sends another SUBSCRIBE.
            self._emit_error(TransportFault(f"WebSocket session has ended; {stream} not subscribed"))
            return stream
        if send_now:
            self._schedule(self.subscribe([stream]))
        if start:
            self.start()
        return stream

    def start(self) -> None:
        """Run the connection on a background daemon thread."""
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(target=self.run, name="kline-ws", daemon=True)
        self._thread.start()

    def run(self) -> None:
        """Run the websocket session in the calling thread until it ends."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            raise RuntimeError("KlineWSStream.run() cannot be called from an active event loop.")
        asyncio.run(self._run_async())

    def close(self) -> None:
        """Unsubscribe everything, close the connection. Terminal."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        loop = self._loop
        if loop is None or not loop.is_running():
            self._stop = True
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._closing = loop.create_task(self._shutdown())
            return

        fut = asyncio.run_coroutine_threadsafe(self._shutdown(), loop)
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            # The session may end on its own before the shutdown gets to run.
            thread.join(timeout=self.close_timeout_s + self.recv_poll_timeout_s)
            if not fut.done():
                fut.cancel()
            elif not fut.cancelled() and fut.exception() is not None:
                self._log.error("WebSocket shutdown failed: %s", fut.exception())
            return
        try:
            fut.result(timeout=self.close_timeout_s + 1.0)
        except Exception:
            self._log.exception("WebSocket shutdown failed")

    async def _send_json(self, request: dict) -> None:
        ws = self._ws
        if ws is None:
            raise TransportFault("WebSocket is not connected")
        await ws.send(json.dumps(request))

    async def subscribe(self, streams: List[str]) -> None:
        await self._send_json({"method": "SUBSCRIBE", "params": list(streams), "id": 0})
        self._emit_status("ws_subscribe", {"streams": list(streams)})

    async def unsubscribe(self, streams: List[str]) -> None:
        await self._send_json({"method": "UNSUBSCRIBE", "params": list(streams), "id": 0})
        self._emit_status("ws_unsubscribe", {"streams": list(streams)})

    def _schedule(self, coro) -> None:
        loop = self._loop
        if loop is None or not loop.is_running():
            coro.close()
            self._emit_error(TransportFault("WebSocket loop is not running"))
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            task = loop.create_task(self._guarded(coro))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            asyncio.run_coroutine_threadsafe(self._guarded(coro), loop)

    async def _guarded(self, coro) -> None:
        try:
            await coro
        except KlinesError as exc:
            self._emit_error(exc)
        except Exception as exc:
            self._emit_error(TransportFault(f"WebSocket send failed: {exc}"))

    async def _on_open(self) -> None:
        with self._lock:
            self._connected = True
            pending, self._pending = self._pending, []
            self._subscriptions.extend(pending)
        for stream in pending:
            await self.subscribe([stream])

    async def _shutdown(self) -> None:
        self._stop = True
        ws = self._ws
        if ws is None:
            return
        with self._lock:
            streams = list(self._subscriptions)
            self._connected = False
        try:
            await self.unsubscribe(streams)
        except Exception as exc:
            self._emit_error(TransportFault(f"UNSUBSCRIBE failed: {exc}"))
        await ws.close()

    def _handle_message(self, msg) -> None:
        if isinstance(msg, (bytes, bytearray)):
            msg = msg.decode("utf-8", errors="replace")
        try:
            payload = json.loads(msg)
        except ValueError as exc:
            self._emit_error(TransportFault(f"Malformed WS frame: {exc}"))
            return

        api_error = api_error_from_payload(payload)
        if api_error is not None:
            self._emit_error(api_error)
            return
        if not isinstance(payload, dict):
            return

        stream = payload.get("stream")
        data = payload.get("data", payload)
        if not isinstance(data, dict) or data.get("e") != "kline":
            return
        self._handle_kline(data.get("k"), stream)

    def _handle_kline(self, kline, stream: Optional[str]) -> None:
        if not isinstance(kline, dict):
            self._emit_error(TransportFault("Kline event without a kline payload"))
            return
        if not kline.get("x"):
            return
        try:
            candle = candle_from_ws_kline(kline)
            if not stream:
                stream = stream_name(str(kline["s"]), str(kline["i"]))
        except (KeyError, ValueError) as exc:
            self._emit_error(TransportFault(f"Malformed kline payload: {exc!r}"))
            return

        with self._lock:
            callbacks = list(self._callbacks.get(stream, ()))
        for cb in callbacks:
            try:
                cb(candle)
            except Exception:
                self._log.exception("Callback error (stream=%s)", stream)

    async def _ping_loop(self) -> None:
        if self.ping_interval_s <= 0 or self._ws is None:
            return
        while not self._stop:
            await asyncio.sleep(self.ping_interval_s)
            if self._stop or self._ws is None:
                return
            try:
                payload = os.urandom(4)
                pong_waiter = await self._ws.ping(payload)
                self._emit_status("ws_ping", {"nbytes": len(payload)})
                await asyncio.wait_for(pong_waiter, timeout=self.ping_timeout_s)
                self._emit_status("ws_pong", {"nbytes": len(payload)})
            except Exception as exc:
                self._emit_status("ws_ping_timeout", {"error": str(exc)})
                self._emit_error(TransportFault(f"Ping failed: {exc}"))
                with contextlib.suppress(Exception):
                    await self._ws.close()
                return

    async def _read_loop(self) -> None:
        assert self._ws is not None
        while not self._stop:
            try:
                msg = await asyncio.wait_for(self._ws.recv(), timeout=self.recv_poll_timeout_s)
            except asyncio.TimeoutError:
                continue
            except ConnectionClosed as exc:
                self._emit_status("ws_close", {"code": exc.rcvd.code if exc.rcvd else None, "msg": str(exc)})
                if not self._stop:
                    self._emit_error(TransportFault(f"WebSocket closed: {exc}"))
                return
            except Exception as exc:
                self._emit_status("ws_error", {"error": str(exc)})
                self._emit_error(TransportFault(f"WebSocket receive failed: {exc}"))
                return

            if msg is None:
                return
            self._handle_message(msg)

    def _ssl_context(self) -> Optional[ssl.SSLContext]:
        if not self.insecure_tls:
            return None
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        return ctx

    async def _run_async(self) -> None:
        self._loop = asyncio.get_running_loop()
        if self._closed:
            return
        ssl_ctx = self._ssl_context()
        connect_kwargs = {
            "ping_interval": None,
            "ping_timeout": None,
            "open_timeout": self.open_timeout_s,
            "close_timeout": self.close_timeout_s,
            "max_queue": self.max_queue,
        }
        if ssl_ctx is not None:
            connect_kwargs["ssl"] = ssl_ctx
        try:
            async with ws_connect(self.ws_url, **connect_kwargs) as ws:
                self._ws = ws
                if self._closed:
                    return
                self._emit_status("ws_connect", {"url": self.ws_url})
                await self._on_open()

                ping_task = asyncio.create_task(self._ping_loop())
                try:
                    await self._read_loop()
                finally:
                    ping_task.cancel()
                    with contextlib.suppress(BaseException):
                        await ping_task
                    if self._closing is not None:
                        with contextlib.suppress(Exception):
                            await self._closing
        except Exception as exc:
            self._emit_status("ws_run_exception", {"error": str(exc)})
            self._emit_error(TransportFault(f"WebSocket session failed: {exc}"))
        finally:
            with self._lock:
                self._connected = False
                self._session_ended = True
            self._ws = None
            self._emit_status("ws_session_end", {"closed": self._closed})
