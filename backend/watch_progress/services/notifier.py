from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import websockets
from websockets.exceptions import WebSocketException

from watch_progress.schemas.progress import ProgressUpdateEvent

_log = logging.getLogger(__name__)


class ProgressNotifier(Protocol):
    async def emit(self, event: ProgressUpdateEvent) -> bool: ...


class WebSocketNotifier:
    """Best-effort emitter for the ``progress-update`` side channel.

    Delivery is not acknowledged; a failed send drops the connection and the
    next emit reconnects.
    """

    def __init__(self, url: str, open_timeout: float = 5.0) -> None:
        self.url = url
        self.open_timeout = open_timeout
        self._conn = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings) -> WebSocketNotifier:
        return cls(settings.push_url)

    async def emit(self, event: ProgressUpdateEvent) -> bool:
        data = event.model_dump_json(by_alias=True)
        async with self._lock:
            try:
                if self._conn is None:
                    self._conn = await websockets.connect(self.url, open_timeout=self.open_timeout)
                await self._conn.send(data)
                return True
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                _log.debug('progress push failed url=%s err=%s', self.url, exc)
                await self._drop()
                return False

    async def _drop(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            try:
                await conn.close()
            except (OSError, WebSocketException):
                pass

    async def close(self) -> None:
        async with self._lock:
            await self._drop()
