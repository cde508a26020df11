# tests/test_messages.py
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from dining.enums import OrderStatus
from dining.errors import TransportParseError
from dining.messages import (
    DiningNewOrders,
    LegacyOrderUpdate,
    NewOrderMessage,
    OrderStatusChangeMessage,
    OrderUpdateMessage,
    PaymentStatusUpdated,
    ServerErrorMessage,
    classify,
    normalize_id,
    order_from_wire,
    orders_from_wire,
    resolve_status,
)

@pytest.mark.parametrize("raw", [107, "107", ["107"], [107], 107.0, " 107 "])
def test_normalize_id_accepts_wire_shapes(raw):
    assert normalize_id(raw) == 107

@pytest.mark.parametrize("raw", [True, False, None, [], ["1", "2"], "abc", "", 1.5, {"id": 1}])
def test_normalize_id_rejects(raw):
    with pytest.raises(TransportParseError):
        normalize_id(raw)

def test_resolve_status_known_and_unknown():
    assert resolve_status("void") is OrderStatus.VOID
    assert resolve_status(OrderStatus.READY) is OrderStatus.READY
    # unknown values fall back to pending
    assert resolve_status("on_the_moon") is OrderStatus.PENDING
    assert resolve_status(None) is OrderStatus.PENDING

def test_classify_legacy_batch_first():
    v = classify({"updated_order": [{"dining_id": ["607"], "status": "pending"}]})
    assert isinstance(v, LegacyOrderUpdate)
    assert v.updates[0].dining_id == ["607"]
    assert v.updates[0].status == "pending"

    # the dining channel stamps legacy batches with type=dining
    v = classify({"type": "dining", "updated_order": []})
    assert isinstance(v, LegacyOrderUpdate)
    assert v.updates == ()

def test_classify_skips_malformed_legacy_entries():
    v = classify({"updated_order": ["junk", {"dining_id": 3, "status": "ready"}]})
    assert len(v.updates) == 1

def test_classify_payment_notice_and_new_orders():
    assert isinstance(classify("Payment Status updated"), PaymentStatusUpdated)
    v = classify({"message": "Payment Status updated", "restaurantId": "r-1"})
    assert isinstance(v, PaymentStatusUpdated) and v.restaurant_id == "r-1"
    v = classify({"type": "dining", "new_orders": [{"id": 1}], "restaurantId": "r-1"})
    assert isinstance(v, DiningNewOrders) and len(v.orders) == 1

@pytest.mark.parametrize("raw,cls", [
    ({"type": "order_update", "data": {"orders": []}}, OrderUpdateMessage),
    ({"type": "order_status_change", "data": {"orderId": "1", "status": "ready"}}, OrderStatusChangeMessage),
    ({"type": "new_order", "data": {"order": {"id": "9"}}, "timestamp": "t"}, NewOrderMessage),
    ({"type": "error", "data": "boom"}, ServerErrorMessage),
])
def test_classify_tagged(raw, cls):
    assert isinstance(classify(raw), cls)

@pytest.mark.parametrize("raw", [
    {"type": "mystery", "data": {}},
    {"hello": "world"},
    "some text",
    [1, 2, 3],
    42,
])
def test_classify_unknown_is_parse_error(raw):
    with pytest.raises(TransportParseError):
        classify(raw)

def test_order_from_wire_aliases():
    o = order_from_wire({
        "id": 12,
        "dining_id": "607",
        "table_id": 4,
        "ordered_items": [{"id": 1, "name": "Pho", "price": 12.5, "quantity": 2,
                           "selectedModifiers": [{"name": "Size", "options": [{"name": "L", "price": 2}]}]}],
        "dining_status": "preparing",
        "total_amount": 29,
        "created_date": "2024-01-01T00:00:00Z",
    })
    assert o.id == "12" and o.dining_id == 607 and o.table_id == "4"
    assert o.status is OrderStatus.PREPARING
    assert o.total_amount == 29.0
    assert o.items[0].modifiers[0].options[0].name == "L"
    assert o.created_at == "2024-01-01T00:00:00Z"

def test_orders_from_wire_drops_bad_rows():
    rows = [{"id": "1", "table_id": "T"}, "nope", {"table_id": "T"}]
    out = orders_from_wire(rows)
    assert [o.id for o in out] == ["1"]
    assert out[0].status is OrderStatus.PENDING
