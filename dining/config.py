# dining/config.py
from dataclasses import dataclass, field
from typing import List, Optional

from dining.models import TableSession, Viewport
from utils.time import parse_duration

DEFAULT_SURFACE_COMMAND = [
    "chromium", "--app={url}", "--window-size={width},{height}", "--window-position={left},{top}",
]

@dataclass
class WebSocketSettings:
    connect_timeout_s: float = 10.0
    reconnect_interval_s: float = 3.0
    max_reconnect_attempts: int = 5

@dataclass
class PaymentSettings:
    poll_interval_s: float = 0.5
    timeout_s: float = 30.0
    popup_width: int = 600
    popup_height: int = 700
    viewport: Viewport = field(default_factory=Viewport)
    surface_command: List[str] = field(default_factory=lambda: list(DEFAULT_SURFACE_COMMAND))

@dataclass
class DiningSettings:
    """In-dining runtime configuration."""
    restaurant_id: Optional[str]
    table_id: Optional[str] = None
    websocket: WebSocketSettings = field(default_factory=WebSocketSettings)
    payment: PaymentSettings = field(default_factory=PaymentSettings)

    def session(self) -> Optional[TableSession]:
        if not self.restaurant_id:
            return None
        return TableSession(restaurant_id=self.restaurant_id, table_id=self.table_id or None)


def _seconds(v, default: float) -> float:
    if v is None or v == "":
        return default
    if isinstance(v, (int, float)):
        return float(v)
    return parse_duration(str(v))


def make_settings_from_cfg(cfg: dict) -> DiningSettings:
    rest = cfg.get("restaurant") or {}
    ws = cfg.get("websocket") or {}
    pay = cfg.get("payment") or {}
    popup = pay.get("popup") or {}
    vp = pay.get("viewport") or {}

    return DiningSettings(
        restaurant_id=(str(rest["id"]) if rest.get("id") else None),
        table_id=(str(rest["table_id"]) if rest.get("table_id") else None),
        websocket=WebSocketSettings(
            connect_timeout_s=_seconds(ws.get("connect_timeout"), 10.0),
            reconnect_interval_s=_seconds(ws.get("reconnect_interval"), 3.0),
            max_reconnect_attempts=int(ws.get("max_reconnect_attempts", 5)),
        ),
        payment=PaymentSettings(
            poll_interval_s=_seconds(pay.get("poll_interval"), 0.5),
            timeout_s=_seconds(pay.get("timeout"), 30.0),
            popup_width=int(popup.get("width", 600)),
            popup_height=int(popup.get("height", 700)),
            viewport=Viewport(
                width=int(vp.get("width", 1280)),
                height=int(vp.get("height", 800)),
                left=int(vp.get("left", 0)),
                top=int(vp.get("top", 0)),
                avail_width=int(vp["avail_width"]) if vp.get("avail_width") else None,
            ),
            surface_command=list(pay.get("surface_command") or DEFAULT_SURFACE_COMMAND),
        ),
    )
