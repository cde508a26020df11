# dining/stores/order_store.py
from typing import Callable, Iterable, List, Optional, Tuple
from dining.models import Order

Listener = Callable[[Tuple[Order, ...]], None]

class OrderStore:
    """
    Replaceable "current orders" mirror for one table.

    The collection is an immutable tuple that is only ever swapped as a whole,
    so a reader never observes a half-applied merge.
    """

    def __init__(self, orders: Iterable[Order] = ()) -> None:
        self._orders: Tuple[Order, ...] = tuple(orders)
        self._version = 0
        self._listeners: List[Listener] = []

    @property
    def version(self) -> int:
        return self._version

    def snapshot(self) -> Tuple[Order, ...]:
        return self._orders

    def replace(self, orders: Iterable[Order]) -> Tuple[Order, ...]:
        """Swap in a new collection (silent refresh: no loading state involved)."""
        self._orders = tuple(orders)
        self._version += 1
        for cb in list(self._listeners):
            cb(self._orders)
        return self._orders

    def update(self, fn: Callable[[Tuple[Order, ...]], Iterable[Order]]) -> Tuple[Order, ...]:
        """Read-compute-replace in one synchronous step."""
        return self.replace(fn(self._orders))

    def get(self, order_id: str) -> Optional[Order]:
        for o in self._orders:
            if o.id == order_id:
                return o
        return None

    def on_change(self, cb: Listener) -> None:
        self._listeners.append(cb)

    def __len__(self) -> int:
        return len(self._orders)
