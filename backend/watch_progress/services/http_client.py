from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Any, Mapping

import httpx
from pydantic import TypeAdapter

from watch_progress import __version__

_DEFAULT_TIMEOUT = httpx.Timeout(10.0, connect=5.0)
_USER_AGENT = f"watch-progress/{__version__}"


def _as_timeout(value: httpx.Timeout | float | None) -> httpx.Timeout:
    if value is None:
        return _DEFAULT_TIMEOUT
    if isinstance(value, httpx.Timeout):
        return value
    return httpx.Timeout(float(value))


@lru_cache(maxsize=32)
def _adapter(model: Any) -> TypeAdapter:
    return TypeAdapter(model)


class HTTPClient:
    """Lazily opened ``httpx.AsyncClient`` bound to one base url.

    ``transport`` is passed straight to httpx so callers can mount a
    ``MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: httpx.Timeout | float | None = None,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self._timeout = _as_timeout(timeout)
        self._headers = {"User-Agent": _USER_AGENT, **(headers or {})}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    async def _http(self) -> httpx.AsyncClient:
        async with self._lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self._timeout,
                    headers=self._headers,
                    transport=self._transport,
                )
            return self._client

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Issue a request and hand back the raw response, whatever its status."""
        client = await self._http()
        return await client.request(method, "/" + path.lstrip("/"), **kwargs)

    async def fetch(self, method: str, path: str, model: Any, **kwargs: Any) -> Any:
        """Issue a request, fail on HTTP errors and decode the JSON body into ``model``."""
        response = await self.send(method, path, **kwargs)
        response.raise_for_status()
        if not response.content:
            raise ValueError(f"{method} {path} returned an empty body")
        return _adapter(model).validate_python(response.json())
