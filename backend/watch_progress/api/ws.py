from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
import logging

from watch_progress.schemas.progress import ProgressUpdateEvent

router = APIRouter()
_log = logging.getLogger(__name__)


class ViewerChannel:
    """Open push connections of every viewer; fan-out is best effort."""

    def __init__(self):
        self.viewers: set[WebSocket] = set()

    async def join(self, ws: WebSocket):
        await ws.accept()
        self.viewers.add(ws)
        _log.debug('viewer joined count=%d', len(self.viewers))

    def leave(self, ws: WebSocket):
        self.viewers.discard(ws)

    async def publish(self, event: ProgressUpdateEvent, exclude: WebSocket | None = None) -> int:
        """Send ``event`` to all viewers but ``exclude``; returns how many received it."""
        text = event.model_dump_json(by_alias=True)
        delivered = 0
        for ws in list(self.viewers):
            if ws is exclude:
                continue
            try:
                await ws.send_text(text)
                delivered += 1
            except (RuntimeError, OSError, WebSocketDisconnect) as exc:
                _log.debug('dropping dead viewer connection: %s', exc)
                self.leave(ws)
        return delivered


channel = ViewerChannel()


async def publish_progress(event: ProgressUpdateEvent, exclude: WebSocket | None = None) -> int:
    return await channel.publish(event, exclude=exclude)


@router.websocket('/ws/progress')
async def progress_ws(ws: WebSocket):
    """Push side channel: relays ``progress-update`` messages between viewers."""
    await channel.join(ws)
    try:
        while True:
            raw = await ws.receive_text()
            try:
                event = ProgressUpdateEvent.model_validate_json(raw)
            except ValidationError:
                # pings and junk are ignored
                continue
            if event.type == 'progress-update':
                await publish_progress(event, exclude=ws)
    except WebSocketDisconnect:
        pass
    finally:
        channel.leave(ws)
