# infra/http_client.py
from __future__ import annotations

import aiohttp
import asyncio
import json
import random
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode
from utils.logger import logger as _default_logger

JSON_SEPARATORS = (",", ":")

class HttpError(Exception):
    def __init__(self, status: int, message: str, payload: Optional[dict] = None):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.message = message
        self.payload = payload or {}


def _json_dumps_compact(obj: Any) -> str:
    return json.dumps(obj, separators=JSON_SEPARATORS, ensure_ascii=False)

def _build_query(params: Optional[Mapping[str, Any]]) -> str:
    if not params:
        return ""
    return "?" + urlencode(params, doseq=True, safe=":/")

def _error_payload(text: str) -> dict:
    try:
        data = json.loads(text) if text else {}
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {"data": data}

class HttpClient:
    def __init__(self,
                 cfg: Mapping[str, Any],
                 logger=None,
                 *,
                 timeout_ms: Optional[int] = None,
                 session: Optional[aiohttp.ClientSession] = None,
                 ) -> None:
        self.cfg = cfg
        self.log = logger or _default_logger
        self.session = session
        self._owned_session = session is None

        api_cfg = cfg.get("api", {})
        self.base_url = str(api_cfg.get("rest_base", "")).rstrip("/")

        # timeouts & retries
        timeouts_cfg = cfg.get("timeouts", {})
        retries_cfg = cfg.get("retries", {})
        self.timeout_ms = int(timeout_ms or timeouts_cfg.get("rest_ms", 8000))
        self.max_attempts = int(retries_cfg.get("rest_max_attempts", 3))
        self.backoff_ms = int(retries_cfg.get("backoff_ms", 200))

        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout_ms / 1000)
            self.session = aiohttp.ClientSession(timeout=timeout, raise_for_status=False, trust_env=True)

        self.log.debug(f"HttpClient init base_url={self.base_url} timeout_ms={self.timeout_ms}")

    # ---- async context manager ----------------------------------------------------
    async def __aenter__(self) -> "HttpClient":
        if self._owned_session and (self.session is None or self.session.closed):
            timeout = aiohttp.ClientTimeout(total=self.timeout_ms / 1000.0)
            self.session = aiohttp.ClientSession(timeout=timeout, raise_for_status=False, trust_env=True)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owned_session and self.session is not None and not self.session.closed:
            await self.session.close()

    async def request(
            self,
            method: str,
            path: str,
            *,
            params: Optional[Mapping[str, Any]] = None,
            json_body: Optional[Mapping[str, Any]] = None,
            headers: Optional[Mapping[str, str]] = None,
            timeout_ms: Optional[int] = None,
            retry: bool = True,
        ) -> Any:
        """
        Single entry point for REST calls.
        - path: appended to api.rest_base, must start with "/"
        - params: querystring
        - json_body: JSON request body
        - timeout_ms: overrides the session timeout
        - retry: exponential backoff on 5xx / 429 / network errors
        Returns decoded JSON ({"raw": text} when the body is not JSON).
        """
        assert path.startswith("/"), "path must start with /"
        method = method.upper()
        url = self.base_url + path + _build_query(params)
        body_str = _json_dumps_compact(json_body) if json_body is not None else ""
        req_headers = {
            "Content-Type": "application/json", "Accept": "application/json"
        }
        if headers:
            req_headers.update(headers)

        timeout_ctx = aiohttp.ClientTimeout(total=timeout_ms / 1000.0) if timeout_ms else None

        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.session.request(
                    method,
                    url,
                    data=body_str if body_str else None,
                    headers=req_headers,
                    timeout=timeout_ctx,
                ) as resp:
                    text = await resp.text()
                    status = resp.status
                    if status >= 400:
                        if retry and (status >= 500 or status == 429) and attempt < self.max_attempts:
                            await self._sleep_backoff(attempt)
                            continue
                        raise HttpError(status, text[:256], _error_payload(text))

                    try:
                        return json.loads(text) if text else {}
                    except json.JSONDecodeError:
                        return {"raw": text}
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if retry and attempt < self.max_attempts:
                    self.log.warning(f"Network error: {e!r} when requesting {url}, retrying...")
                    await self._sleep_backoff(attempt)
                    continue
                raise HttpError(599, f"Network error: {e!r}") from e
            except HttpError:
                raise
            except Exception as e:
                raise HttpError(599, f"Unexpected error: {e}") from e

    async def _sleep_backoff(self, attempt: int) -> None:
        base = self.backoff_ms * (2 ** (attempt - 1))
        jitter = random.randint(0, self.backoff_ms)
        await asyncio.sleep((base + jitter) / 1000.0)

    # ---- convenience wrappers -------------------------------------------------
    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None, *,
                  headers: Optional[Mapping[str, str]] = None, retry: bool = True) -> Any:
        return await self.request("GET", path, params=params, headers=headers, retry=retry)

    async def post(self, path: str, json_body: Optional[Mapping[str, Any]] = None, *,
                   headers: Optional[Mapping[str, str]] = None, retry: bool = False) -> Any:
        return await self.request("POST", path, json_body=json_body, headers=headers, retry=retry)
