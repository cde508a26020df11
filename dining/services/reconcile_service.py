# dining/services/reconcile_service.py
from dataclasses import replace
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from dining.enums import OrderStatus
from dining.errors import TransportParseError
from dining.event_bus import EventBus, EventName
from dining.messages import (
    PAYMENT_STATUS_UPDATED,
    DiningNewOrders,
    LegacyOrderUpdate,
    MessageVariant,
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
    try_normalize_id,
)
from dining.models import Order, OrderItem, StatusUpdate
from dining.stores.order_store import OrderStore
from dining.stores.session_store import SessionStore
from utils.logger import logger as _default_logger
from utils.time import utc_iso, utc_ms

UNKNOWN_TABLE = "unknown"

__all__ = [
    "OrderReconciler",
    "merge",
    "matches",
    "make_placeholder",
    "normalize_id",
    "resolve_status",
]


def matches(order: Order, canonical_id: int) -> bool:
    """Dedicated dining_id wins; otherwise compare against the parsed primary id."""
    if order.dining_id is not None:
        return order.dining_id == canonical_id
    return try_normalize_id(order.id) == canonical_id


def _find(orders: Sequence[Order], canonical_id: int) -> int:
    for i, o in enumerate(orders):
        if matches(o, canonical_id):
            return i
    return -1


def _locate(orders: Sequence[Order], raw_id: Any) -> int:
    """Index of the order a tagged message refers to, resolved like merge(); -1 if absent."""
    cid = try_normalize_id(raw_id)
    if cid is not None:
        return _find(orders, cid)
    for i, o in enumerate(orders):
        if o.id == str(raw_id):
            return i
    return -1


def _patch_status(order: Order, status: OrderStatus, void_reason: Optional[str]) -> Order:
    if status is OrderStatus.VOID and void_reason:
        return replace(order, status=status, void_reason=void_reason)
    if status is not OrderStatus.VOID and order.void_reason:
        return replace(order, status=status, void_reason=None)
    return replace(order, status=status)


def make_placeholder(canonical_id: int, status: OrderStatus, table_id: Optional[str],
                     void_reason: Optional[str] = None) -> Order:
    """Stand-in for an order we were told about but have never loaded."""
    return Order(
        id=str(canonical_id),
        dining_id=canonical_id,
        table_id=table_id or UNKNOWN_TABLE,
        items=(OrderItem(id=utc_ms(), name=f"Order #{canonical_id}", price=0.0, quantity=1, image=""),),
        status=status,
        total_amount=0.0,
        created_at=utc_iso(),
        void_reason=void_reason if status is OrderStatus.VOID else None,
    )


def merge(existing: Iterable[Order], updates: Iterable[StatusUpdate],
          table_id: Optional[str] = None) -> Tuple[Order, ...]:
    """
    Apply a batch of status updates and return a new collection.

    - target resolved by canonical id (dining_id first, then primary id)
    - found: only status (and void_reason) change
    - missing: a placeholder is appended; later updates in the same batch hit it
    - updates whose id cannot be normalized are skipped
    The input is never mutated.
    """
    current: List[Order] = list(existing)
    created: List[Order] = []

    for u in updates:
        if u.status == PAYMENT_STATUS_UPDATED:
            continue
        try:
            cid = normalize_id(u.dining_id)
        except TransportParseError as e:
            _default_logger.warning(f"skip update with bad dining id: {e}")
            continue
        status = resolve_status(u.status)

        idx = _find(current, cid)
        if idx >= 0:
            current[idx] = _patch_status(current[idx], status, u.void_reason)
            continue

        idx = _find(created, cid)
        if idx >= 0:
            created[idx] = _patch_status(created[idx], status, u.void_reason)
            continue

        created.append(make_placeholder(cid, status, table_id, u.void_reason))

    return tuple(current) + tuple(created)


class OrderReconciler:
    """
    Consumes RAW_MESSAGE events, classifies them, merges them into the
    OrderStore and re-publishes normalized domain events.
    Transport/parse errors are logged and dropped.
    """

    def __init__(self, store: OrderStore, event_bus: EventBus,
                 session: Optional[SessionStore] = None, logger=None) -> None:
        self._store = store
        self._bus = event_bus
        self._session = session or SessionStore()
        self._log = logger or _default_logger
        self.dropped = 0

    def attach(self) -> None:
        self._bus.subscribe(EventName.RAW_MESSAGE, self.handle_raw)

    def detach(self) -> None:
        self._bus.unsubscribe(EventName.RAW_MESSAGE, self.handle_raw)

    def handle_raw(self, raw: Any) -> Optional[MessageVariant]:
        try:
            variant = classify(raw)
        except TransportParseError as e:
            self.dropped += 1
            self._log.warning(f"drop websocket message: {e}")
            return None
        try:
            self.apply(variant)
        except TransportParseError as e:
            self.dropped += 1
            self._log.warning(f"drop websocket message: {e}")
            return None
        return variant

    def apply(self, variant: MessageVariant) -> None:
        if isinstance(variant, LegacyOrderUpdate):
            self._apply_legacy(variant)
        elif isinstance(variant, PaymentStatusUpdated):
            self._log.info("payment status updated notice received")
            self._bus.dispatch(EventName.PAYMENT_STATUS_UPDATED, {"restaurant_id": variant.restaurant_id})
            self._request_refresh("payment_status_updated")
        elif isinstance(variant, DiningNewOrders):
            self._log.info(f"{len(variant.orders)} new dining orders announced")
            self._request_refresh("new_orders")
        elif isinstance(variant, OrderUpdateMessage):
            self._apply_order_update(variant)
        elif isinstance(variant, OrderStatusChangeMessage):
            self._apply_status_change(variant)
        elif isinstance(variant, NewOrderMessage):
            self._apply_new_order(variant)
        elif isinstance(variant, ServerErrorMessage):
            self._log.error(f"server error received: {variant.data}")
            self._bus.dispatch(EventName.SERVER_ERROR, variant.data)

        if isinstance(variant, (OrderUpdateMessage, OrderStatusChangeMessage, NewOrderMessage, ServerErrorMessage)):
            self._bus.dispatch(EventName.MESSAGE, variant)

    # ---- variants -----------------------------------------------------------

    def _apply_legacy(self, msg: LegacyOrderUpdate) -> None:
        if not msg.updates:
            self._log.info("empty updated_order batch, orders left intact")
            return

        self._log.info(f"processing {len(msg.updates)} order status updates")
        table_id = self._session.table_id
        self._store.update(lambda orders: merge(orders, msg.updates, table_id=table_id))

        voided = False
        for u in msg.updates:
            if u.status == PAYMENT_STATUS_UPDATED:
                self._bus.dispatch(EventName.PAYMENT_STATUS_UPDATED, {"restaurant_id": self._session.restaurant_id})
                self._request_refresh("payment_status_updated")
                continue
            cid = try_normalize_id(u.dining_id)
            if cid is None:
                continue
            status = resolve_status(u.status)
            voided = voided or status is OrderStatus.VOID
            self._bus.dispatch(EventName.ORDER_STATUS_CHANGE, {
                "dining_id": cid,
                "status": status.value,
                "order_id": str(cid),
            })

        self._bus.dispatch(EventName.ORDER_UPDATE, {
            "updated_orders": [
                {"dining_id": u.dining_id, "status": u.status} for u in msg.updates
            ],
        })
        if voided:
            self._request_refresh("void")

    def _apply_order_update(self, msg: OrderUpdateMessage) -> None:
        data = msg.data
        if isinstance(data.get("orders"), list):
            self._store.replace(orders_from_wire(data["orders"]))
        elif isinstance(data.get("order"), dict):
            patch = data["order"]
            pid = patch.get("id")
            if pid is None:
                raise TransportParseError("order_update.order without id")

            def _patch(orders):
                idx = _locate(orders, pid)
                if idx < 0:
                    self._log.info(f"order_update for unknown order {pid!r}, ignored")
                    return orders
                out = list(orders)
                fields = {k: v for k, v in patch.items() if k != "id"}
                out[idx] = order_from_wire(_overlay(_order_to_wire(out[idx]), fields))
                return out

            self._store.update(_patch)
        self._bus.dispatch(EventName.ORDER_UPDATE, data)

    def _apply_status_change(self, msg: OrderStatusChangeMessage) -> None:
        data = msg.data
        order_id, status = data.get("orderId"), data.get("status")
        if order_id is not None and status:
            new_status = resolve_status(status)
            void_reason = data.get("void_reason")

            def _patch(orders):
                idx = _locate(orders, order_id)
                if idx < 0:
                    self._log.info(f"status change for unknown order {order_id!r}, ignored")
                    return orders
                out = list(orders)
                out[idx] = _patch_status(out[idx], new_status, void_reason)
                return out

            self._store.update(_patch)
        self._bus.dispatch(EventName.ORDER_STATUS_CHANGE, data)

    def _apply_new_order(self, msg: NewOrderMessage) -> None:
        order = order_from_wire(msg.data.get("order"))
        self._store.update(lambda orders: (order,) + tuple(o for o in orders if o.id != order.id))
        self._bus.dispatch(EventName.NEW_ORDER, msg.data)

    def _request_refresh(self, reason: str) -> None:
        self._bus.dispatch(EventName.REFRESH_REQUESTED, {
            "table_id": self._session.table_id,
            "reason": reason,
        })


def _order_to_wire(o: Order) -> dict:
    return {
        "id": o.id,
        "dining_id": o.dining_id,
        "table_id": o.table_id,
        "items": [
            {
                "id": i.id, "name": i.name, "price": i.price, "quantity": i.quantity, "image": i.image,
                "modifiers": [
                    {"name": m.name, "options": [{"name": op.name, "price": op.price} for op in m.options]}
                    for m in i.modifiers
                ],
            }
            for i in o.items
        ],
        "status": o.status.value,
        "totalAmount": o.total_amount,
        "createdAt": o.created_at,
        "updatedAt": o.updated_at,
        "void_reason": o.void_reason,
    }


_ALIAS_GROUPS = (
    ("items", "ordered_items"),
    ("status", "dining_status"),
    ("totalAmount", "total_amount"),
    ("createdAt", "created_date"),
    ("updatedAt", "updated_date"),
)


def _overlay(base: dict, patch: dict) -> dict:
    out = dict(base)
    for group in _ALIAS_GROUPS:
        if any(k in patch for k in group):
            for k in group:
                out.pop(k, None)
    out.update(patch)
    return out
