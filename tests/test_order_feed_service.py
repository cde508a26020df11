# tests/test_order_feed_service.py
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import json
import pytest
from aioresponses import aioresponses

from conftest import REST, Connector, FakeWS, eventually
from dining.enums import ConnectionState, OrderStatus
from dining.event_bus import EventName
from dining.models import TableSession
from dining.services.order_feed_service import OrderFeedService
from dining.services.order_history_service import OrderHistoryService
from dining.stores.order_store import OrderStore
from dining.stores.session_store import SessionStore
from infra.ws_client import WSClient

HISTORY = f"{REST}/getDiningOrder?table_id=T7"

def _feed(bus, http_client, endpoints, ws, session=TableSession("r-1", "T7")):
    client = WSClient(endpoints.ws_base, bus, connector=Connector(ws), base_delay_s=0.01)
    return OrderFeedService(client, bus, OrderStore(), SessionStore(session),
                            history=OrderHistoryService(http_client, endpoints))

@pytest.mark.asyncio
async def test_start_loads_history_then_applies_live_updates(bus, http_client, endpoints):
    ws = FakeWS()
    feed = _feed(bus, http_client, endpoints, ws)
    with aioresponses() as m:
        m.get(HISTORY, payload=[{"id": "607", "dining_id": 607, "table_id": "T7", "status": "preparing"}])
        await feed.start()

    assert feed.running
    assert feed.ws.status is ConnectionState.CONNECTED
    assert [o.id for o in feed.store.snapshot()] == ["607"]

    ws.feed(json.dumps({"updated_order": [{"dining_id": ["607"], "status": "ready"},
                                          {"dining_id": "999", "status": "pending"}]}))
    await eventually(lambda: len(feed.store) == 2)
    assert feed.store.get("607").status is OrderStatus.READY
    assert feed.store.get("999").table_id == "T7"
    await feed.stop()
    assert feed.ws.status is ConnectionState.DISCONNECTED

@pytest.mark.asyncio
async def test_void_triggers_history_refresh(bus, http_client, endpoints):
    ws = FakeWS()
    feed = _feed(bus, http_client, endpoints, ws)
    with aioresponses() as m:
        m.get(HISTORY, payload=[{"id": "607", "table_id": "T7", "status": "preparing"}])
        m.get(HISTORY, payload={"orders": [{"id": "607", "table_id": "T7", "status": "void",
                                            "void_reason": "kitchen closed"}]})
        await feed.start()
        v0 = feed.store.version
        ws.feed(json.dumps({"updated_order": [{"dining_id": "607", "status": "void"}]}))
        # merge bumps the version once, the refresh once more
        await eventually(lambda: feed.store.version == v0 + 2)
    assert feed.store.get("607").void_reason == "kitchen closed"
    await feed.stop()

@pytest.mark.asyncio
async def test_failed_refresh_keeps_current_orders(bus, http_client, endpoints):
    ws = FakeWS()
    feed = _feed(bus, http_client, endpoints, ws)
    with aioresponses() as m:
        m.get(HISTORY, payload=[{"id": "1", "table_id": "T7"}])
        for _ in range(3):
            m.get(HISTORY, status=500, body="down")
        await feed.start()
        assert await feed.refresh() is False
    assert [o.id for o in feed.store.snapshot()] == ["1"]
    await feed.stop()

@pytest.mark.asyncio
async def test_start_without_tenant_is_noop(bus, http_client, endpoints):
    feed = _feed(bus, http_client, endpoints, FakeWS(), session=None)
    await feed.start()
    assert not feed.running
    assert feed.ws.status is ConnectionState.DISCONNECTED
    assert bus.subscribers(EventName.RAW_MESSAGE) == []

@pytest.mark.asyncio
async def test_stop_detaches_reconciler(bus, http_client, endpoints):
    feed = _feed(bus, http_client, endpoints, FakeWS())
    with aioresponses() as m:
        m.get(HISTORY, payload=[])
        await feed.start()
    await feed.stop()
    assert bus.subscribers(EventName.RAW_MESSAGE) == []
    assert bus.subscribers(EventName.REFRESH_REQUESTED) == []
