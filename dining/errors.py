# dining/errors.py
class DiningError(Exception):
    """Base in-dining error."""
    def __init__(self, msg: str = "", **ctx):
        super().__init__(msg)
        self.msg = msg
        self.ctx = ctx

    def __str__(self):
        base = self.msg or self.__class__.__name__
        if self.ctx:
            details = ", ".join(f"{k}={v}" for k, v in self.ctx.items())
            return f"{base} [{details}]"
        return base

# ---- transport ----
class ConnectionTimeout(DiningError):
    """Websocket handshake did not complete within the connect window."""

class ConnectionInProgress(DiningError):
    """connect() called while another handshake is still in flight."""

class ConnectionFailed(DiningError):
    """Handshake rejected or network unreachable."""

class ConnectionExhausted(DiningError):
    """Reconnect attempts reached the configured maximum; no more retries."""

class TransportParseError(DiningError):
    """Inbound frame is malformed or matches no known message variant."""

class UnknownStatusValue(DiningError):
    """Order status outside the closed set; reported, then defaulted to pending."""

# ---- payment ----
class PopupBlocked(DiningError):
    """Confirmation surface could not be opened."""

class StatusFetchError(DiningError):
    """Payment status lookup failed (non-2xx, bad payload or network)."""
    def __init__(self, msg: str = "", status: int | None = None, **ctx):
        super().__init__(msg, **ctx)
        self.status = status

class PaymentLinkError(DiningError):
    """Payment gateway refused to create a payment link."""
    def __init__(self, msg: str = "", status: int | None = None, **ctx):
        super().__init__(msg, **ctx)
        self.status = status
