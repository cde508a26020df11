# dining/services/payment_gateway_service.py
from typing import Any, Dict, Optional

from dining.errors import PaymentLinkError
from infra.http_client import HttpError
from utils.logger import logger as _default_logger

_LINK_KEYS = ("paymentUrl", "paymentLink", "payment_link")

class PaymentGatewayService:
    """
    "Make payment" action: asks the gateway for a hosted payment link for a table.
    """

    def __init__(self, http_client, endpoints, logger=None) -> None:
        self._http = http_client
        self._ep = endpoints
        self._log = logger or _default_logger

    async def make_payment(self, table_id: str, total_amount: Optional[float] = None) -> str:
        body: Dict[str, Any] = {"table_id": table_id}
        if total_amount is not None:
            body["total_amount"] = total_amount
        try:
            resp = await self._http.post(self._ep.make_payment, json_body=body)
        except HttpError as e:
            raise PaymentLinkError(self._message_for(e), status=e.status, table_id=table_id) from e

        link = self.extract_link(resp)
        if not link:
            raise PaymentLinkError("Payment failed. Please try again.", table_id=table_id)
        self._log.info(f"payment link issued table_id={table_id}")
        return link

    @staticmethod
    def extract_link(resp: Any) -> Optional[str]:
        if not isinstance(resp, dict):
            return None
        for k in _LINK_KEYS:
            if resp.get(k):
                return str(resp[k])
        data = resp.get("data")
        if isinstance(data, dict):
            for k in _LINK_KEYS:
                if data.get(k):
                    return str(data[k])
        return None

    @staticmethod
    def _message_for(e: HttpError) -> str:
        if e.status == 400:
            return e.payload.get("message") or "Invalid payment data"
        if e.status == 401:
            return "Authentication required"
        if e.status == 402:
            return "Payment required or insufficient funds"
        if e.status == 500:
            return "Payment service temporarily unavailable"
        return "Payment failed. Please try again."
