from __future__ import annotations
import logging
from datetime import datetime, timezone
from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from watch_progress.core.config import settings
from watch_progress.models.progress import VideoProgress
from watch_progress.schemas.progress import ProgressRecord, ProgressSummary
from watch_progress.services.intervals import (
    Interval,
    intervals_from_raw,
    intervals_to_raw,
    merge_intervals,
    total_watched,
)
from watch_progress.services.tracker import is_valid_duration

_log = logging.getLogger(__name__)


def _to_record(row: VideoProgress) -> ProgressRecord:
    return ProgressRecord(
        user_id=row.user_id,
        video_id=row.video_id,
        intervals=intervals_from_raw(row.intervals),
        last_position=row.last_position,
        total_watched=row.total_watched_s,
        last_watched_at=row.last_watched_at,
        is_completed=row.is_completed,
    )


def _get_row(db: Session, user_id: str, video_id: str) -> VideoProgress | None:
    return db.execute(
        select(VideoProgress).where(VideoProgress.user_id == user_id, VideoProgress.video_id == video_id)
    ).scalar_one_or_none()


def get_record(db: Session, user_id: str, video_id: str) -> ProgressRecord | None:
    row = _get_row(db, user_id, video_id)
    return _to_record(row) if row else None


def list_records(db: Session, user_id: str) -> list[ProgressRecord]:
    rows = db.execute(
        select(VideoProgress).where(VideoProgress.user_id == user_id).order_by(VideoProgress.last_watched_at.desc())
    ).scalars().all()
    return [_to_record(r) for r in rows]


def apply_update(
    db: Session,
    user_id: str,
    video_id: str,
    interval: Interval,
    last_position: float,
    is_completed: bool = False,
    duration: float | None = None,
) -> ProgressRecord:
    """Merge one posted interval into the stored set for (user, video).

    The completion latch only ever moves from False to True here; clearing it
    requires an explicit forced reset.
    """
    row = _get_row(db, user_id, video_id)
    if row is None:
        row = VideoProgress(user_id=user_id, video_id=video_id, intervals=[], last_position=0.0, total_watched_s=0.0, is_completed=False)
        db.add(row)

    if is_valid_duration(duration):
        row.duration_s = float(duration)

    existing = intervals_from_raw(row.intervals)
    merged = merge_intervals(
        existing + [interval],
        row.duration_s,
        tolerance=settings.merge_tolerance,
        min_watch=settings.min_watch_time,
    )
    # JSON columns are replaced, not mutated in place, so the change is tracked
    row.intervals = intervals_to_raw(merged)
    row.total_watched_s = total_watched(merged)
    row.last_position = float(last_position)
    row.is_completed = bool(row.is_completed or is_completed)
    row.last_watched_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(row)
    _log.debug(
        'progress updated user=%s video=%s segments=%d total=%.2f completed=%s',
        user_id, video_id, len(merged), row.total_watched_s, row.is_completed,
    )
    return _to_record(row)


def clear_record(db: Session, user_id: str, video_id: str, force: bool = False) -> bool:
    """Delete the stored record. Completed records are kept unless ``force``."""
    row = _get_row(db, user_id, video_id)
    if row is None:
        return False
    if row.is_completed and not force:
        _log.info('refusing reset of completed progress user=%s video=%s', user_id, video_id)
        return False
    db.execute(delete(VideoProgress).where(VideoProgress.id == row.id))
    db.commit()
    return True


def summarize(user_id: str, records: list[ProgressRecord]) -> ProgressSummary:
    total = len(records)
    completed = sum(1 for r in records if r.is_completed)
    overall = round(completed / total * 100) if total else 0
    return ProgressSummary(user_id=user_id, videos=records, completed=completed, total=total, overall_progress=overall)
