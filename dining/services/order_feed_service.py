# dining/services/order_feed_service.py
import asyncio
import contextlib
from typing import Any, Optional

from dining.event_bus import EventBus, EventName
from dining.services.order_history_service import OrderHistoryService
from dining.services.reconcile_service import OrderReconciler
from dining.stores.order_store import OrderStore
from dining.stores.session_store import SessionStore
from infra.http_client import HttpError
from infra.ws_client import WSClient
from utils.logger import logger as _default_logger

class OrderFeedService:
    """
    Live order feed for one table:
      start():  load history, attach the reconciler, open the websocket
      refresh:  REFRESH_REQUESTED -> reload history into the store
      stop():   close the websocket, detach, cancel pending refreshes
    """

    def __init__(self,
                 ws: WSClient,
                 event_bus: EventBus,
                 store: OrderStore,
                 session: SessionStore,
                 history: Optional[OrderHistoryService] = None,
                 logger=None) -> None:
        self.ws = ws
        self.bus = event_bus
        self.store = store
        self.session = session
        self.history = history
        self.reconciler = OrderReconciler(store, event_bus, session=session, logger=logger)
        self._log = logger or _default_logger
        self._refresh_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        rid = self.session.restaurant_id
        if not rid:
            self._log.warning("No restaurant ID provided, order feed not started")
            return
        self._running = True
        self.reconciler.attach()
        self.bus.subscribe(EventName.REFRESH_REQUESTED, self._on_refresh_requested)
        await self.refresh()
        try:
            await self.ws.connect(rid)
        except Exception:
            await self.stop()
            raise
        self._log.info(f"order feed started restaurant={rid} table={self.session.table_id}")

    async def stop(self) -> None:
        self._running = False
        self.bus.unsubscribe(EventName.REFRESH_REQUESTED, self._on_refresh_requested)
        self.reconciler.detach()
        task, self._refresh_task = self._refresh_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.ws.disconnect()

    async def refresh(self) -> bool:
        """Replace the store with the server's order list. False when nothing was loaded."""
        table_id = self.session.table_id
        if self.history is None or not table_id:
            return False
        try:
            orders = await self.history.fetch(table_id)
        except HttpError as e:
            self._log.warning(f"order history refresh failed table={table_id}: {e}")
            return False
        self.store.replace(orders)
        self._log.info(f"order history loaded table={table_id} orders={len(orders)}")
        return True

    def _on_refresh_requested(self, payload: Any) -> None:
        # collapse bursts into one in-flight refresh
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        reason = (payload or {}).get("reason") if isinstance(payload, dict) else None
        self._log.debug(f"order refresh requested reason={reason}")
        self._refresh_task = asyncio.get_running_loop().create_task(self.refresh())
