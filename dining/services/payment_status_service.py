# dining/services/payment_status_service.py
from typing import Any, Dict

from dining.errors import StatusFetchError
from infra.http_client import HttpError
from utils.logger import logger as _default_logger

class PaymentStatusService:
    """
    Follow-up lookup for providers that only hand back a transaction id.
    GET /pos/order/track?order_id=<id>  (header restaurantId: <tenant>)
    """

    def __init__(self, http_client, endpoints, logger=None) -> None:
        self._http = http_client
        self._ep = endpoints
        self._log = logger or _default_logger

    async def fetch_status(self, order_id: str, restaurant_id: str) -> Dict[str, Any]:
        """Single attempt, no retries. Any failure is a StatusFetchError."""
        if not restaurant_id:
            raise StatusFetchError("no restaurant id available for payment status tracking", order_id=order_id)
        try:
            payload = await self._http.get(
                self._ep.order_track,
                params={"order_id": order_id},
                headers={"restaurantId": str(restaurant_id)},
                retry=False,
            )
        except HttpError as e:
            self._log.warning(f"payment status fetch failed order_id={order_id}: {e}")
            raise StatusFetchError(str(e), status=e.status, order_id=order_id) from e

        if not isinstance(payload, dict) or "raw" in payload:
            raise StatusFetchError("unexpected payment status payload", order_id=order_id)
        self._log.info(f"payment status order_id={order_id} status={payload.get('status')!r}")
        return payload
