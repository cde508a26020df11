# infra/__init__.py
from __future__ import annotations

import asyncio
import contextlib
from typing import Protocol, Mapping, Any, Optional, List

from infra.http_client import HttpClient, HttpError

# ========== 1) port: services depend on this, not on the concrete HttpClient ==========
class HttpPort(Protocol):
    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None, *,
                  headers: Optional[Mapping[str, str]] = None, retry: bool = True) -> Any: ...
    async def post(self, path: str, json_body: Optional[Mapping[str, Any]] = None, *,
                   headers: Optional[Mapping[str, str]] = None, retry: bool = False) -> Any: ...


# ========== 2) lightweight container: start / stop ==========
class HttpContainer:
    """
    Owns the HttpClient and any background tasks bound to it.
    - the composition root (app entry) holds it
    - services receive container.http
    """
    def __init__(self, http: HttpClient, tasks: Optional[List[asyncio.Task]] = None) -> None:
        self.http = http
        self._tasks = tasks or []

    @classmethod
    async def start(cls,
                    cfg: Mapping[str, Any],
                    logger=None,
                    ) -> "HttpContainer":
        http = HttpClient(cfg, logger=logger)
        return cls(http)

    def add_task(self, task: asyncio.Task) -> None:
        self._tasks.append(task)

    async def stop(self) -> None:
        for t in self._tasks:
            t.cancel()
            with contextlib.suppress(Exception, asyncio.CancelledError):
                await t
        await self.http.close()


__all__ = ["HttpClient", "HttpContainer", "HttpError", "HttpPort"]
