# dining/services/order_history_service.py
import json
from typing import Any, List, Tuple

from dining.messages import orders_from_wire
from dining.models import Order
from utils.logger import logger as _default_logger

class OrderHistoryService:
    """
    Pulls the authoritative order list for a table (GET /getDiningOrder?table_id=...).
    """

    def __init__(self, http_client, endpoints, logger=None) -> None:
        self._http = http_client
        self._ep = endpoints
        self._log = logger or _default_logger

    async def fetch(self, table_id: str) -> Tuple[Order, ...]:
        payload = await self._http.get(self._ep.order_history, params={"table_id": table_id})
        rows = self._unwrap(payload)
        self._log.debug(f"order history table_id={table_id} rows={len(rows)}")
        return orders_from_wire(rows)

    @staticmethod
    def _unwrap(result: Any) -> List[Any]:
        if not result:
            return []
        if isinstance(result, dict) and isinstance(result.get("raw"), str):
            result = result["raw"]
        if isinstance(result, str):
            try:
                result = json.loads(result)
            except ValueError:
                return []
        if isinstance(result, list):
            return result
        if isinstance(result, dict) and isinstance(result.get("orders"), list):
            return result["orders"]
        return []
