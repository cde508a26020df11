# infra/ws_client.py
from utils.logger import logger as _default_logger
import contextlib
import asyncio, json
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from dining.enums import ConnectionState
from dining.errors import (
    ConnectionExhausted,
    ConnectionFailed,
    ConnectionInProgress,
    ConnectionTimeout,
    TransportParseError,
)
from dining.event_bus import EventBus, EventName

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006

Connector = Callable[[str], Awaitable[Any]]

def _default_connector(ping_interval: Optional[float]) -> Connector:
    async def _connect(url: str):
        return await websockets.connect(url, ping_interval=ping_interval, close_timeout=10)
    return _connect

class WSClient:
    """
    Order websocket for one restaurant: connect / disconnect / reconnect with
    linear backoff (base_delay_s * attempt), bounded by max_attempts.

    Every lifecycle change and every decoded frame is dispatched on the EventBus.
    """

    def __init__(self,
        ws_base: str,
        event_bus: EventBus,
        *,
        path: str = "/websocketForOrders",
        order_type: str = "indining",
        connect_timeout_s: float = 10.0,
        base_delay_s: float = 3.0,
        max_attempts: int = 5,
        ping_interval: Optional[float] = 20,
        connector: Optional[Connector] = None,
        logger=None,
    ):
        self.ws_base = ws_base.rstrip("/")
        self.path = path
        self.order_type = order_type
        self.connect_timeout_s = connect_timeout_s
        self.base_delay_s = base_delay_s
        self.max_attempts = max_attempts
        self._bus = event_bus
        self._connector = connector or _default_connector(ping_interval)
        self._log = logger or _default_logger

        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        self._connecting = False
        self._restaurant_id: Optional[str] = None
        self._attempts = 0
        self._reader: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closing_manually = False

        self._log.info(f"WSClient init base={self.ws_base}{self.path} "
                       f"connect_timeout={connect_timeout_s}s base_delay={base_delay_s}s "
                       f"max_attempts={max_attempts}")

    # ---- read-only state ---------------------------------------------------

    @property
    def status(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def restaurant_id(self) -> Optional[str]:
        return self._restaurant_id

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def url_for(self, restaurant_id: str) -> str:
        query = urlencode({"restaurant_id": restaurant_id, "type": self.order_type})
        return f"{self.ws_base}{self.path}?{query}"

    # ---- public API --------------------------------------------------------

    async def connect(self, restaurant_id: str) -> None:
        if self._ws is not None and self._state is ConnectionState.CONNECTED:
            return
        if self._connecting:
            raise ConnectionInProgress("connection already in progress", restaurant_id=restaurant_id)

        # an explicit connect supersedes any scheduled reconnect
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._attempts = 0

        self._restaurant_id = restaurant_id
        self._closing_manually = False
        await self._open()

    async def disconnect(self) -> None:
        """Idempotent teardown; safe from any state."""
        rid = self._restaurant_id
        self._closing_manually = True

        if self._reconnect_task is not None:
            if self._reconnect_task is not asyncio.current_task():
                self._reconnect_task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await self._reconnect_task
            self._reconnect_task = None

        ws, self._ws = self._ws, None
        if ws is not None:
            self._state = ConnectionState.CLOSING
            with contextlib.suppress(Exception):
                await ws.close()

        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await reader

        self._connecting = False
        self._attempts = 0
        self._restaurant_id = None
        self._state = ConnectionState.DISCONNECTED
        if rid is not None:
            self._log.info(f"WS disconnected restaurant={rid}")

    # ---- internals ---------------------------------------------------------

    async def _open(self) -> None:
        rid = self._restaurant_id
        url = self.url_for(rid)
        self._connecting = True
        self._state = ConnectionState.CONNECTING
        self._log.info(f"WS connect: connecting to {url} (attempt={self._attempts})")
        try:
            ws = await asyncio.wait_for(self._connector(url), timeout=self.connect_timeout_s)
        except asyncio.TimeoutError as e:
            self._state = ConnectionState.DISCONNECTED
            self._log.warning(f"WS connect timeout after {self.connect_timeout_s}s restaurant={rid}")
            self._bus.dispatch(EventName.ERROR, {"error": "timeout", "restaurant_id": rid})
            raise ConnectionTimeout("websocket connection timeout", restaurant_id=rid) from e
        except (InvalidHandshake, OSError) as e:
            self._state = ConnectionState.DISCONNECTED
            self._log.warning(f"WS connect failed restaurant={rid}: {type(e).__name__} ({e})")
            self._bus.dispatch(EventName.ERROR, {"error": str(e), "restaurant_id": rid})
            raise ConnectionFailed(str(e) or type(e).__name__, restaurant_id=rid) from e
        finally:
            self._connecting = False

        if self._closing_manually:
            # disconnect() ran while the handshake was in flight
            with contextlib.suppress(Exception):
                await ws.close()
            self._state = ConnectionState.DISCONNECTED
            return

        self._ws = ws
        self._state = ConnectionState.CONNECTED
        self._attempts = 0
        self._log.info(f"WS connected restaurant={rid}")
        self._reader = asyncio.create_task(self._read_loop(ws))
        self._bus.dispatch(EventName.CONNECTED, {"restaurant_id": rid})

    async def _read_loop(self, ws) -> None:
        try:
            async for msg in ws:
                await self._on_frame(msg)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed:
            pass
        except Exception:
            self._log.exception("WS read loop: exception")

        if self._ws is not ws:
            return
        code = getattr(ws, "close_code", None)
        reason = getattr(ws, "close_reason", "") or ""
        self._on_close(ABNORMAL_CLOSURE if code is None else code, reason)

    async def _on_frame(self, msg: Any) -> None:
        if isinstance(msg, bytes):
            msg = msg.decode("utf-8", errors="replace")
        m = msg.strip()
        if m.lower() == "ping":
            with contextlib.suppress(Exception):
                await self._ws.send("pong")
            return
        if m.lower() == "pong":
            return
        try:
            data = json.loads(m)
        except ValueError:
            self._log.warning(f"WS {TransportParseError.__name__}: undecodable frame {m[:128]!r}")
            return
        self._log.debug(f"WS message restaurant={self._restaurant_id}: {data}")
        self._bus.dispatch(EventName.RAW_MESSAGE, data)

    def _on_close(self, code: int, reason: str) -> None:
        self._ws = None
        self._reader = None
        self._state = ConnectionState.DISCONNECTED
        self._log.warning(f"WS closed code={code} reason={reason!r} restaurant={self._restaurant_id}")
        self._bus.dispatch(EventName.DISCONNECTED, {"code": code, "reason": reason})

        if self._closing_manually or code == NORMAL_CLOSURE or not self._restaurant_id:
            return
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._attempts >= self.max_attempts:
            err = ConnectionExhausted("max reconnection attempts reached",
                                      attempts=self._attempts, restaurant_id=self._restaurant_id)
            self._log.error(f"WS {err}")
            self._bus.dispatch(EventName.EXHAUSTED, err)
            return

        self._attempts += 1
        delay = self.base_delay_s * self._attempts
        self._log.info(f"WS reconnect {self._attempts}/{self.max_attempts} in {delay:.2f}s")
        self._bus.dispatch(EventName.RECONNECT_SCHEDULED, {"attempt": self._attempts, "delay": delay})
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._closing_manually or not self._restaurant_id or self._ws is not None:
            return
        try:
            await self._open()
        except (ConnectionTimeout, ConnectionFailed) as e:
            self._log.warning(f"WS reconnection failed: {e}")
            self._on_close(ABNORMAL_CLOSURE, str(e))
