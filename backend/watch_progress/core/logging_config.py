from __future__ import annotations

import logging

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

# Per-request and per-frame chatter from the HTTP client, the push channel
# and the server; kept at WARNING unless the app itself runs at DEBUG.
_TRANSPORT_LOGGERS: tuple[str, ...] = (
    'httpx',
    'httpcore',
    'websockets',
    'websockets.client',
    'websockets.server',
    'uvicorn.protocols.websockets.websockets_impl',
)

_PING_MARKERS: tuple[str, ...] = ('keepalive ping', 'keepalive pong', '> PING', '< PONG')


class _DropPingFrames(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - logging hook
        message = record.getMessage()
        return not any(marker in message for marker in _PING_MARKERS)


_PING_FILTER = _DropPingFrames()


def _resolve_level(level_name: str | None) -> int:
    level = logging.getLevelName((level_name or 'INFO').upper())
    return level if isinstance(level, int) else logging.INFO


def _attach_filter(logger: logging.Logger) -> None:
    if _PING_FILTER not in logger.filters:
        logger.addFilter(_PING_FILTER)


def configure_logging(level_name: str | None = None) -> int:
    """Set up the root logger for the server or an embedding player host.

    Safe to call repeatedly: the stream handler is installed once and only the
    levels are updated afterwards. Returns the effective level.
    """
    level = _resolve_level(level_name)
    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, '_watch_progress', False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._watch_progress = True
        root.addHandler(handler)
    _attach_filter(root)

    transport_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _TRANSPORT_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(transport_level)
        _attach_filter(logger)

    for name in ('uvicorn', 'uvicorn.error'):
        _attach_filter(logging.getLogger(name))
    return level
