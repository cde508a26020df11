# dining/messages.py
"""
Decoding of order-websocket payloads into a closed set of message variants.

Two wire families share the socket:

* legacy, untagged:  {"updated_order": [{"dining_id": 107 | "107" | ["107"], "status": "ready"}]}
* tagged:            {"type": "order_update" | "order_status_change" | "new_order" | "error",
                      "data": {...}, "timestamp": "..."}

The legacy shape is detected structurally before the tagged union is tried.
The dining channel also carries `{"type": "dining", "new_orders": [...]}` and a
bare "Payment Status updated" notice. Anything else is a TransportParseError.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from dining.enums import DEFAULT_ORDER_STATUS, OrderStatus
from dining.errors import TransportParseError, UnknownStatusValue
from dining.models import Modifier, ModifierOption, Order, OrderItem, StatusUpdate
from utils.logger import logger

PAYMENT_STATUS_UPDATED = "Payment Status updated"

_INT_RE = re.compile(r"^\s*[+-]?\d+\s*$")

# ---------------------------------------------------------------------------
# identifiers & statuses
# ---------------------------------------------------------------------------

def normalize_id(value: Any) -> int:
    """
    Canonical dining id: 107, "107" and ["107"] all map to 107.
    Raises TransportParseError for anything else (bools, empty lists, "abc", ...).
    """
    raw = value
    if isinstance(value, (list, tuple)):
        if len(value) != 1:
            raise TransportParseError("dining id list must hold exactly one element", value=raw)
        value = value[0]
    if isinstance(value, bool) or value is None:
        raise TransportParseError("invalid dining id", value=raw)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        raise TransportParseError("non-integral dining id", value=raw)
    if isinstance(value, str) and _INT_RE.match(value):
        return int(value)
    raise TransportParseError("invalid dining id", value=raw)


def try_normalize_id(value: Any) -> Optional[int]:
    try:
        return normalize_id(value)
    except TransportParseError:
        return None


def resolve_status(value: Any) -> OrderStatus:
    """
    Map a wire status onto OrderStatus. Unknown values fall back to pending.
    NOTE: this silently masks upstream data-quality problems; kept on purpose
    until product decides otherwise.
    """
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        logger.warning(f"{UnknownStatusValue.__name__}: {value!r} -> {DEFAULT_ORDER_STATUS.value}")
        return DEFAULT_ORDER_STATUS

# ---------------------------------------------------------------------------
# wire orders
# ---------------------------------------------------------------------------

class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class WireModifierOption(_Wire):
    name: str = ""
    price: float = 0.0


class WireModifier(_Wire):
    name: str = ""
    options: List[WireModifierOption] = Field(default_factory=list)


class WireItem(_Wire):
    id: Union[int, str] = 0
    name: str = ""
    price: float = 0.0
    quantity: int = 1
    image: Optional[str] = ""
    modifiers: List[WireModifier] = Field(
        default_factory=list, validation_alias=AliasChoices("selectedModifiers", "modifiers")
    )

    def to_item(self) -> OrderItem:
        return OrderItem(
            id=self.id,
            name=self.name,
            price=self.price,
            quantity=self.quantity,
            image=self.image or "",
            modifiers=tuple(
                Modifier(m.name, tuple(ModifierOption(o.name, o.price) for o in m.options))
                for m in self.modifiers
            ),
        )


class WireOrder(_Wire):
    id: Optional[Union[str, int]] = None
    dining_id: Any = None
    table_id: Optional[Union[str, int]] = None
    items: List[WireItem] = Field(default_factory=list, validation_alias=AliasChoices("items", "ordered_items"))
    status: str = Field(default=DEFAULT_ORDER_STATUS.value, validation_alias=AliasChoices("status", "dining_status"))
    total_amount: float = Field(default=0.0, validation_alias=AliasChoices("totalAmount", "total_amount"))
    created_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("createdAt", "created_date"))
    updated_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("updatedAt", "updated_date"))
    void_reason: Optional[str] = None

    def to_order(self) -> Order:
        dining_id = try_normalize_id(self.dining_id) if self.dining_id is not None else None
        if self.id is not None:
            oid = str(self.id)
        elif dining_id is not None:
            oid = str(dining_id)
        else:
            raise TransportParseError("order has neither id nor dining_id")
        return Order(
            id=oid,
            table_id=str(self.table_id) if self.table_id not in (None, "") else "unknown",
            items=tuple(i.to_item() for i in self.items),
            status=resolve_status(self.status),
            total_amount=self.total_amount,
            created_at=self.created_at,
            updated_at=self.updated_at,
            dining_id=dining_id,
            void_reason=self.void_reason,
        )


def order_from_wire(payload: Any) -> Order:
    if not isinstance(payload, dict):
        raise TransportParseError("order payload must be an object", got=type(payload).__name__)
    try:
        return WireOrder.model_validate(payload).to_order()
    except ValidationError as e:
        raise TransportParseError("invalid order payload", errors=e.error_count()) from e


def orders_from_wire(rows: Any) -> Tuple[Order, ...]:
    """Decode a list of wire orders, dropping (and logging) rows that do not decode."""
    out: List[Order] = []
    for row in rows or []:
        try:
            out.append(order_from_wire(row))
        except TransportParseError as e:
            logger.warning(f"drop undecodable order row: {e}")
    return tuple(out)

# ---------------------------------------------------------------------------
# message variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LegacyOrderUpdate:
    updates: Tuple[StatusUpdate, ...]


@dataclass(frozen=True)
class PaymentStatusUpdated:
    restaurant_id: Optional[str] = None


@dataclass(frozen=True)
class DiningNewOrders:
    orders: Tuple[Any, ...]
    restaurant_id: Optional[str] = None


class OrderUpdateMessage(_Wire):
    type: Literal["order_update"]
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[str] = None


class OrderStatusChangeMessage(_Wire):
    type: Literal["order_status_change"]
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[str] = None


class NewOrderMessage(_Wire):
    type: Literal["new_order"]
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[str] = None


class ServerErrorMessage(_Wire):
    type: Literal["error"]
    data: Any = None
    timestamp: Optional[str] = None


TaggedMessage = Annotated[
    Union[OrderUpdateMessage, OrderStatusChangeMessage, NewOrderMessage, ServerErrorMessage],
    Field(discriminator="type"),
]
_tagged_adapter: TypeAdapter = TypeAdapter(TaggedMessage)

MessageVariant = Union[
    LegacyOrderUpdate,
    PaymentStatusUpdated,
    DiningNewOrders,
    OrderUpdateMessage,
    OrderStatusChangeMessage,
    NewOrderMessage,
    ServerErrorMessage,
]


def _status_updates(rows: List[Any]) -> Tuple[StatusUpdate, ...]:
    out = []
    for r in rows:
        if not isinstance(r, dict):
            logger.warning(f"skip malformed updated_order entry: {r!r}")
            continue
        out.append(StatusUpdate(
            dining_id=r.get("dining_id"),
            status=str(r.get("status") or ""),
            void_reason=r.get("void_reason"),
        ))
    return tuple(out)


def classify(raw: Any) -> MessageVariant:
    """Structural classification of one decoded websocket payload."""
    if isinstance(raw, str):
        if raw.strip() == PAYMENT_STATUS_UPDATED:
            return PaymentStatusUpdated()
        raise TransportParseError("unexpected text frame", text=raw[:64])

    if not isinstance(raw, dict):
        raise TransportParseError("payload must be a JSON object", got=type(raw).__name__)

    msg_type = raw.get("type")
    rid = raw.get("restaurantId")

    # legacy untagged batch; the dining channel stamps it with type="dining"
    if isinstance(raw.get("updated_order"), list) and msg_type in (None, "dining"):
        return LegacyOrderUpdate(_status_updates(raw["updated_order"]))

    if raw.get("message") == PAYMENT_STATUS_UPDATED:
        return PaymentStatusUpdated(restaurant_id=rid)

    if msg_type == "dining" and isinstance(raw.get("new_orders"), list):
        return DiningNewOrders(orders=tuple(raw["new_orders"]), restaurant_id=rid)

    if msg_type is None:
        raise TransportParseError("untagged payload without updated_order", keys=sorted(raw)[:8])

    try:
        return _tagged_adapter.validate_python(raw)
    except ValidationError as e:
        raise TransportParseError("unknown or invalid tagged message", type=msg_type) from e
