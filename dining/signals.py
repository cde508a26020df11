# dining/signals.py
from typing import Annotated, Any, Optional, Union, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from dining.enums import PaymentProvider


class _Signal(BaseModel):
    model_config = ConfigDict(extra="ignore")


class IposPayload(_Signal):
    responseMessage: Optional[str] = None
    transactionReferenceId: Optional[str] = None
    responseCode: Any = None
    amount: Optional[Union[float, str]] = None


class CloverPayload(_Signal):
    payment_status: Optional[str] = None


class SquarePayload(_Signal):
    transactionId: Optional[str] = None
    orderId: Optional[str] = None


class StatusCheckPayload(_Signal):
    transaction_id: Union[str, int]


class IposPayment(_Signal):
    type: Literal["IPOS_PAYMENT"]
    payload: IposPayload


class CloverPayment(_Signal):
    type: Literal["CLOVER_PAYMENT"]
    payload: CloverPayload


class SquarePayment(_Signal):
    type: Literal["SQUARE_PAYMENT"]
    payload: SquarePayload


class PaymentStatusCheck(_Signal):
    type: Literal["PAYMENT_STATUS_CHECK"]
    payload: StatusCheckPayload


CompletionSignal = Annotated[
    Union[IposPayment, CloverPayment, SquarePayment, PaymentStatusCheck],
    Field(discriminator="type"),
]
signal_adapter: TypeAdapter = TypeAdapter(CompletionSignal)

PROVIDER_BY_SIGNAL = {
    IposPayment: PaymentProvider.IPOS,
    CloverPayment: PaymentProvider.CLOVER,
    SquarePayment: PaymentProvider.SQUARE,
    PaymentStatusCheck: PaymentProvider.STATUS_CHECK,
}


def decode_signal(message: Any):
    """Raises pydantic.ValidationError for anything that is not a completion signal."""
    return signal_adapter.validate_python(message)


def ipos_succeeded(payload: IposPayload) -> bool:
    try:
        return float(str(payload.responseCode).strip()) == 200
    except (TypeError, ValueError):
        return False


def clover_succeeded(payload: CloverPayload) -> bool:
    return (payload.payment_status or "").lower() == "success"
