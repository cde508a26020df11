# dining/event_bus.py
import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List

from utils.logger import logger as _default_logger

class EventName(str, Enum):
    # connection lifecycle
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECT_SCHEDULED = "reconnect_scheduled"
    EXHAUSTED = "exhausted"
    ERROR = "error"
    # transport payloads
    RAW_MESSAGE = "raw_message"
    MESSAGE = "message"
    # normalized domain events
    ORDER_UPDATE = "order_update"
    ORDER_STATUS_CHANGE = "order_status_change"
    NEW_ORDER = "new_order"
    SERVER_ERROR = "server_error"
    PAYMENT_STATUS_UPDATED = "payment_status_updated"
    REFRESH_REQUESTED = "refresh_requested"

Handler = Callable[[Any], Any]

@dataclass
class HandlerFailure:
    event: EventName
    handler: Handler
    error: BaseException

class EventBus:
    """
    Lightweight pub/sub over the closed EventName set.

    Handlers run in registration order. A failing handler is logged and
    reported back to the caller; it never stops the remaining handlers.
    Coroutine handlers are scheduled on the running loop.
    """

    def __init__(self, logger=None) -> None:
        self._subs: Dict[EventName, List[Handler]] = {}
        self._log = logger or _default_logger
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, event: EventName, handler: Handler) -> None:
        self._subs.setdefault(EventName(event), []).append(handler)

    def unsubscribe(self, event: EventName, handler: Handler) -> None:
        handlers = self._subs.get(EventName(event))
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            pass

    def subscribers(self, event: EventName) -> List[Handler]:
        return list(self._subs.get(EventName(event), []))

    def dispatch(self, event: EventName, payload: Any = None) -> List[HandlerFailure]:
        """Deliver payload to every current subscriber of event; return the failures."""
        event = EventName(event)
        failures: List[HandlerFailure] = []
        # snapshot: handlers may (un)subscribe while we iterate
        for h in list(self._subs.get(event, [])):
            try:
                res = h(payload)
                if inspect.isawaitable(res):
                    self._track(event, h, res)
            except Exception as e:
                self._log.opt(exception=e).error(f"EventBus handler {_name(h)} failed on {event.value}: {e}")
                failures.append(HandlerFailure(event, h, e))
        return failures

    def _track(self, event: EventName, handler: Handler, aw) -> None:
        task = asyncio.ensure_future(aw)
        self._pending.add(task)

        def _done(t: asyncio.Task):
            self._pending.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                self._log.opt(exception=exc).error(
                    f"EventBus async handler {_name(handler)} failed on {event.value}: {exc}"
                )

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for in-flight coroutine handlers."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

def _name(h: Handler) -> str:
    return getattr(h, "__qualname__", None) or repr(h)
