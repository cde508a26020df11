# dining/services/endpoints.py
from dataclasses import dataclass

@dataclass
class Endpoints:
    # host / base urls
    rest_base: str
    ws_base: str

    # REST / WS paths
    orders_ws: str = "/websocketForOrders"
    order_track: str = "/pos/order/track"
    order_history: str = "/getDiningOrder"
    make_payment: str = "/paymentGateway/inDining"


def make_endpoints_from_cfg(cfg: dict) -> Endpoints:
    try:
        api = cfg["api"]
        rest_base = str(api["rest_base"]).rstrip("/")
        ws_base = str(api["ws_base"]).rstrip("/")
        paths = api.get("paths") or {}
    except KeyError as e:
        raise ValueError(f"Invalid cfg missing key: {e}") from e

    known = Endpoints.__dataclass_fields__.keys() - {"rest_base", "ws_base"}
    return Endpoints(
        rest_base=rest_base,
        ws_base=ws_base,
        **{k: v for k, v in paths.items() if k in known},
    )
