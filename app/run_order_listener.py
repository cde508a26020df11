# app/run_order_listener.py
import asyncio, signal, os, argparse
import contextlib

from dining.config import make_settings_from_cfg
from dining.event_bus import EventBus, EventName
from dining.services.endpoints import make_endpoints_from_cfg
from dining.services.order_feed_service import OrderFeedService
from dining.services.order_history_service import OrderHistoryService
from dining.stores.order_store import OrderStore
from dining.stores.session_store import SessionStore
from infra import HttpContainer
from infra.ws_client import WSClient
from utils.config import load_cfg
from utils.logger import logger

def env_default(name: str, default=None):
    return os.getenv(name, default)

def build_parser():
    p = argparse.ArgumentParser("order-listener")
    p.add_argument("--restaurant-id", default=env_default("RESTAURANT_ID", None))
    p.add_argument("--table-id",      default=env_default("TABLE_ID", None))
    p.add_argument("--config-path",   default=None)
    return p

def _log_orders(orders):
    for o in orders:
        logger.info(f"  order {o.id} dining_id={o.dining_id} status={o.status.value} total={o.total_amount}")

async def main():
    args = build_parser().parse_args()
    cfg = load_cfg(args.config_path)

    settings = make_settings_from_cfg(cfg)
    if args.restaurant_id:
        settings.restaurant_id = args.restaurant_id
    if args.table_id:
        settings.table_id = args.table_id

    endpoints = make_endpoints_from_cfg(cfg)
    container = await HttpContainer.start(cfg)

    bus = EventBus()
    store = OrderStore()
    session = SessionStore(settings.session())
    ws = WSClient(
        endpoints.ws_base, bus,
        path=endpoints.orders_ws,
        connect_timeout_s=settings.websocket.connect_timeout_s,
        base_delay_s=settings.websocket.reconnect_interval_s,
        max_attempts=settings.websocket.max_reconnect_attempts,
    )
    feed = OrderFeedService(ws, bus, store, session,
                            history=OrderHistoryService(container.http, endpoints))

    def _on_orders(orders):
        logger.info(f"orders changed v{store.version} n={len(orders)}")
        _log_orders(orders)

    store.on_change(_on_orders)
    bus.subscribe(EventName.ORDER_STATUS_CHANGE,
                  lambda p: logger.info(f"status change {p}"))
    bus.subscribe(EventName.EXHAUSTED,
                  lambda err: logger.error(f"giving up on live updates: {err}"))

    stop_event = asyncio.Event()

    def _graceful(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _graceful)
        except NotImplementedError:
            pass

    try:
        await feed.start()
        if not feed.running:
            return
        await stop_event.wait()
    finally:
        logger.info("shutting down order listener")
        with contextlib.suppress(Exception):
            await feed.stop()
        await bus.drain()
        await container.stop()

if __name__ == "__main__":
    asyncio.run(main())
