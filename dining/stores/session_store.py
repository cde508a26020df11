# dining/stores/session_store.py
from typing import Optional
from dining.models import TableSession

class SessionStore:
    """
    Holds the table/tenant session the in-dining flow is bound to.
    """

    def __init__(self, session: Optional[TableSession] = None) -> None:
        self._session = session

    def set(self, session: Optional[TableSession]) -> None:
        self._session = session

    def get(self) -> Optional[TableSession]:
        return self._session

    @property
    def restaurant_id(self) -> Optional[str]:
        return self._session.restaurant_id if self._session else None

    @property
    def table_id(self) -> Optional[str]:
        return self._session.table_id if self._session else None
