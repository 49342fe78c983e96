"""Local progress cache.

The cache is a plain key/value byte store; :class:`ProgressCache` owns the
record layout on top of it::

    {"lastPosition": 12.5, "totalWatched": 10.0,
     "intervals": [{"start": 0, "end": 10}], "timestamp": 1700000000000,
     "isCompleted": false}

``timestamp`` is epoch milliseconds of the last write.
"""
from __future__ import annotations

import logging
import math
import os
import re
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Protocol

from pydantic import ValidationError

from watch_progress.schemas.progress import ProgressRecord, CamelModel
from watch_progress.services.intervals import Interval

_log = logging.getLogger(__name__)


class CorruptCacheError(Exception):
    """Cached bytes exist but cannot be decoded into a progress record."""


class CacheStore(Protocol):
    def get(self, key: str) -> bytes | None: ...
    def set(self, key: str, value: bytes) -> None: ...
    def delete(self, key: str) -> None: ...


class MemoryCacheStore:
    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


_UNSAFE = re.compile(r'[^A-Za-z0-9._-]')


class FileCacheStore:
    """One file per key inside ``directory``; writes replace atomically."""

    def __init__(self, directory: str | os.PathLike) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / (_UNSAFE.sub('_', key) + '.json')

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix='.tmp-')
        try:
            with os.fdopen(fd, 'wb') as fh:
                fh.write(value)
            os.replace(tmp, path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass


class CachedProgress(CamelModel):
    last_position: float = 0.0
    total_watched: float = 0.0
    intervals: List[Interval] = []
    timestamp: int = 0
    is_completed: bool = False

    def to_record(self, user_id: str, video_id: str) -> ProgressRecord:
        return ProgressRecord(
            user_id=user_id,
            video_id=video_id,
            intervals=self.intervals,
            last_position=self.last_position,
            total_watched=self.total_watched,
            last_watched_at=datetime.fromtimestamp(self.timestamp / 1000.0, tz=timezone.utc),
            is_completed=self.is_completed,
        )


def progress_key(user_id: str, video_id: str) -> str:
    return f'video_progress_{user_id}_{video_id}'


def duration_key(video_id: str) -> str:
    return f'video-duration-{video_id}'


class ProgressCache:
    def __init__(self, store: CacheStore) -> None:
        self.store = store

    def load(self, user_id: str, video_id: str) -> ProgressRecord | None:
        """Return the cached record, ``None`` when absent.

        Raises :class:`CorruptCacheError` when the stored bytes are malformed.
        """
        raw = self.store.get(progress_key(user_id, video_id))
        if raw is None:
            return None
        try:
            cached = CachedProgress.model_validate_json(raw)
            # out-of-range timestamps only fail on conversion
            return cached.to_record(user_id, video_id)
        except (ValidationError, ValueError, OverflowError, OSError) as exc:
            raise CorruptCacheError(f'malformed cached progress for {user_id}/{video_id}') from exc

    def save(
        self,
        user_id: str,
        video_id: str,
        intervals: list[Interval],
        last_position: float,
        total_watched: float,
        is_completed: bool,
        timestamp: int | None = None,
    ) -> CachedProgress:
        cached = CachedProgress(
            last_position=last_position,
            total_watched=total_watched,
            intervals=[i.copy() for i in intervals],
            timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
            is_completed=is_completed,
        )
        self.store.set(progress_key(user_id, video_id), cached.model_dump_json(by_alias=True).encode('utf-8'))
        _log.debug('cached progress user=%s video=%s segments=%d', user_id, video_id, len(cached.intervals))
        return cached

    def clear(self, user_id: str, video_id: str) -> None:
        self.store.delete(progress_key(user_id, video_id))

    def load_duration(self, video_id: str) -> float | None:
        raw = self.store.get(duration_key(video_id))
        if raw is None:
            return None
        try:
            value = float(raw.decode('utf-8'))
        except (UnicodeDecodeError, ValueError):
            _log.warning('ignoring malformed cached duration video=%s', video_id)
            return None
        if not math.isfinite(value) or value <= 0:
            return None
        return value

    def save_duration(self, video_id: str, duration: float) -> None:
        if duration is None or not math.isfinite(duration) or duration <= 0:
            return
        self.store.set(duration_key(video_id), repr(float(duration)).encode('utf-8'))
