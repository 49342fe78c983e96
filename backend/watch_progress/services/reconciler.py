from __future__ import annotations

import logging

from watch_progress.schemas.progress import ProgressRecord

_log = logging.getLogger(__name__)

ARTIFICIAL_JUMP_FLOOR = 95.0


def reconcile(cached: ProgressRecord | None, remote: ProgressRecord | None) -> ProgressRecord | None:
    """Pick the record that seeds a viewing session.

    A locally completed watch always wins; otherwise the most recently
    written record does. Ties keep the cached copy.
    """
    if cached is None:
        return remote
    if remote is None:
        return cached
    if cached.is_completed:
        _log.debug('keeping completed cached progress video=%s', cached.video_id)
        return cached
    if remote.last_watched_at > cached.last_watched_at:
        _log.debug('using newer remote progress video=%s', remote.video_id)
        return remote
    return cached


def guard_reported_progress(reported: float, is_completed: bool, previous: float | None) -> float:
    """Reject a 100% report that is not backed by the completion latch.

    A full report right after a low one means the viewer jumped to the end;
    that is reported as 0 instead.
    """
    if reported >= 100.0 and not is_completed:
        if previous is None or previous < ARTIFICIAL_JUMP_FLOOR:
            _log.debug('discarding artificial completion previous=%s', previous)
            return 0.0
    return reported
