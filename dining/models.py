# dining/models.py
from dataclasses import dataclass, field
from typing import Optional, Tuple, Any, Union, List

from dining.enums import OrderStatus, PaymentProvider, PaymentState, SurfaceMode

# dining id as it appears on the wire: 107 | "107" | ["107"]
RawDiningId = Union[int, str, List[str]]


@dataclass(frozen=True)
class ModifierOption:
    name: str
    price: float = 0.0


@dataclass(frozen=True)
class Modifier:
    name: str
    options: Tuple[ModifierOption, ...] = ()


@dataclass(frozen=True)
class OrderItem:
    id: Union[int, str]
    name: str
    price: float = 0.0
    quantity: int = 1
    image: str = ""
    modifiers: Tuple[Modifier, ...] = ()


@dataclass(frozen=True)
class Order:
    id: str
    table_id: str
    items: Tuple[OrderItem, ...] = ()
    status: OrderStatus = OrderStatus.PENDING
    total_amount: float = 0.0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    # dedicated dining id; matched before the primary id when present
    dining_id: Optional[int] = None
    void_reason: Optional[str] = None


@dataclass(frozen=True)
class StatusUpdate:
    """One entry of an `updated_order` batch, before id normalization."""
    dining_id: Any
    status: str
    void_reason: Optional[str] = None


@dataclass(frozen=True)
class TableSession:
    """Which restaurant and table the in-dining flow is bound to."""
    restaurant_id: str
    table_id: Optional[str] = None


@dataclass(frozen=True)
class Viewport:
    width: int = 1280
    height: int = 800
    left: int = 0
    top: int = 0
    avail_width: Optional[int] = None


@dataclass(frozen=True)
class SurfaceGeometry:
    width: int
    height: int
    left: int
    top: int


@dataclass
class PaymentSession:
    payment_link: str
    state: PaymentState = PaymentState.VERIFYING
    mode: SurfaceMode = SurfaceMode.POPUP
    provider: Optional[PaymentProvider] = None
    surface: Any = None                       # opaque surface handle
    started_at: float = 0.0
    finished_at: Optional[float] = None
    detail: dict = field(default_factory=dict)
