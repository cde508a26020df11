# tests/conftest.py
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import asyncio
import pytest
import pytest_asyncio

from dining.event_bus import EventBus
from dining.services.endpoints import make_endpoints_from_cfg
from infra.http_client import HttpClient

REST = "https://api.test"
WS = "wss://ws.test"

@pytest.fixture
def test_cfg():
    return {
        "restaurant": {"id": "r-1", "table_id": "T7"},
        "api": {
            "rest_base": REST,
            "ws_base": WS,
            "paths": {
                "orders_ws": "/websocketForOrders",
                "order_track": "/pos/order/track",
                "order_history": "/getDiningOrder",
                "make_payment": "/paymentGateway/inDining",
            },
        },
        "timeouts": {"rest_ms": 2000},
        "retries": {"rest_max_attempts": 3, "backoff_ms": 1},
    }

@pytest.fixture
def endpoints(test_cfg):
    return make_endpoints_from_cfg(test_cfg)

@pytest.fixture
def bus():
    return EventBus()

@pytest_asyncio.fixture
async def http_client(test_cfg):
    """
    HttpClient as an async context manager; the session is closed after each test.
    """
    async with HttpClient(test_cfg) as client:
        yield client


async def eventually(cond, timeout: float = 1.0, step: float = 0.005):
    """Poll cond() until it is truthy or fail after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not cond():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(step)

_EOF = object()

class FakeWS:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self):
        self._q = asyncio.Queue()
        self.sent = []
        self.close_code = None
        self.close_reason = ""
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._q.get()
        if item is _EOF:
            raise StopAsyncIteration
        return item

    async def send(self, msg):
        self.sent.append(msg)

    async def close(self):
        self.closed = True
        if self.close_code is None:
            self.close_code = 1000
        self._q.put_nowait(_EOF)

    def feed(self, msg):
        self._q.put_nowait(msg)

    def drop(self, code=1006, reason="going away"):
        self.close_code = code
        self.close_reason = reason
        self._q.put_nowait(_EOF)


class Connector:
    def __init__(self, *results):
        self.results = list(results)
        self.urls = []

    async def __call__(self, url):
        self.urls.append(url)
        r = self.results.pop(0) if self.results else OSError("refused")
        if isinstance(r, BaseException):
            raise r
        return r
