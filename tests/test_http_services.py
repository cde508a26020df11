# tests/test_http_services.py
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import json
import pytest
from aioresponses import aioresponses, CallbackResult

from conftest import REST
from dining.enums import OrderStatus
from dining.errors import PaymentLinkError, StatusFetchError
from dining.services.order_history_service import OrderHistoryService
from dining.services.payment_gateway_service import PaymentGatewayService
from dining.services.payment_status_service import PaymentStatusService
from infra.http_client import HttpClient, HttpError

TRACK = f"{REST}/pos/order/track?order_id=42"
HISTORY = f"{REST}/getDiningOrder?table_id=T7"
PAY = f"{REST}/paymentGateway/inDining"

# ---- HttpClient -----------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_retries_5xx_then_succeeds(http_client: HttpClient):
    with aioresponses() as m:
        m.get(HISTORY, status=503, body="busy")
        m.get(HISTORY, payload=[{"id": "1"}])
        resp = await http_client.get("/getDiningOrder", params={"table_id": "T7"})
        assert resp == [{"id": "1"}]

@pytest.mark.asyncio
async def test_get_without_retry_raises_first_failure(http_client: HttpClient):
    with aioresponses() as m:
        m.get(TRACK, status=502, body="bad gateway")
        with pytest.raises(HttpError) as ei:
            await http_client.get("/pos/order/track", params={"order_id": 42}, retry=False)
        assert ei.value.status == 502

@pytest.mark.asyncio
async def test_non_json_body_is_wrapped(http_client: HttpClient):
    with aioresponses() as m:
        m.get(TRACK, body="plain text", content_type="text/plain")
        assert await http_client.get("/pos/order/track", params={"order_id": 42}) == {"raw": "plain text"}

# ---- payment status -------------------------------------------------------------

@pytest.mark.asyncio
async def test_fetch_status_sends_tenant_header(http_client, endpoints):
    def _assert_request(url, **kwargs):
        assert kwargs["headers"]["restaurantId"] == "r-1"
        return CallbackResult(status=200, payload={"status": True, "order_id": "42"})

    svc = PaymentStatusService(http_client, endpoints)
    with aioresponses() as m:
        m.get(TRACK, callback=_assert_request)
        resp = await svc.fetch_status("42", "r-1")
        assert resp["status"] is True

@pytest.mark.asyncio
async def test_fetch_status_errors(http_client, endpoints):
    svc = PaymentStatusService(http_client, endpoints)
    with aioresponses() as m:
        m.get(TRACK, status=500, body="oops")
        with pytest.raises(StatusFetchError) as ei:
            await svc.fetch_status("42", "r-1")
        assert ei.value.status == 500

    with aioresponses() as m:
        m.get(TRACK, body="<html>", content_type="text/html")
        with pytest.raises(StatusFetchError):
            await svc.fetch_status("42", "r-1")

    with pytest.raises(StatusFetchError):
        await svc.fetch_status("42", "")

# ---- payment gateway ------------------------------------------------------------

@pytest.mark.asyncio
async def test_make_payment_returns_link(http_client, endpoints):
    def _assert_body(url, **kwargs):
        assert json.loads(kwargs["data"]) == {"table_id": "T7", "total_amount": 21.5}
        return CallbackResult(status=200, payload={"data": {"paymentLink": "https://pay.test/x"}})

    svc = PaymentGatewayService(http_client, endpoints)
    with aioresponses() as m:
        m.post(PAY, callback=_assert_body)
        assert await svc.make_payment("T7", 21.5) == "https://pay.test/x"

@pytest.mark.asyncio
@pytest.mark.parametrize("status,payload,message", [
    (400, {"message": "Table already paid"}, "Table already paid"),
    (400, {}, "Invalid payment data"),
    (401, {}, "Authentication required"),
    (402, {}, "Payment required or insufficient funds"),
    (500, {}, "Payment service temporarily unavailable"),
    (418, {}, "Payment failed. Please try again."),
])
async def test_make_payment_error_copy(http_client, endpoints, status, payload, message):
    svc = PaymentGatewayService(http_client, endpoints)
    with aioresponses() as m:
        m.post(PAY, status=status, payload=payload)
        with pytest.raises(PaymentLinkError) as ei:
            await svc.make_payment("T7")
    assert ei.value.msg == message
    assert ei.value.status == status

@pytest.mark.asyncio
async def test_make_payment_without_link(http_client, endpoints):
    svc = PaymentGatewayService(http_client, endpoints)
    with aioresponses() as m:
        m.post(PAY, payload={"ok": True})
        with pytest.raises(PaymentLinkError):
            await svc.make_payment("T7")

# ---- order history --------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    [{"id": "1", "table_id": "T7", "status": "ready"}],
    {"orders": [{"id": "1", "table_id": "T7", "status": "ready"}]},
    json.dumps([{"id": "1", "table_id": "T7", "status": "ready"}]),
])
async def test_history_unwraps_shapes(http_client, endpoints, body):
    svc = OrderHistoryService(http_client, endpoints)
    with aioresponses() as m:
        if isinstance(body, str):
            m.get(HISTORY, body=json.dumps(body))
        else:
            m.get(HISTORY, payload=body)
        orders = await svc.fetch("T7")
    assert [(o.id, o.status) for o in orders] == [("1", OrderStatus.READY)]

@pytest.mark.asyncio
async def test_history_unknown_shape_is_empty(http_client, endpoints):
    svc = OrderHistoryService(http_client, endpoints)
    with aioresponses() as m:
        m.get(HISTORY, payload={"unexpected": 1})
        assert await svc.fetch("T7") == ()
