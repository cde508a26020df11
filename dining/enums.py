# dining/enums.py
from enum import Enum

class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    VOID = "void"

DEFAULT_ORDER_STATUS = OrderStatus.PENDING

class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"

class PaymentState(str, Enum):
    IDLE = "idle"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    FAILED_PROCESSING = "failed_processing"

TERMINAL_PAYMENT_STATES = frozenset({
    PaymentState.SUCCEEDED,
    PaymentState.FAILED,
    PaymentState.FAILED_PROCESSING,
})

class PaymentProvider(str, Enum):
    IPOS = "ipos"
    CLOVER = "clover"
    SQUARE = "square"
    STATUS_CHECK = "status_check"

class SurfaceMode(str, Enum):
    POPUP = "popup"
    REDIRECT = "redirect"
