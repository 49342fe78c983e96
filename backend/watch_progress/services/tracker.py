"""Interval tracker: turns playback events into watched intervals.

All handlers take the session's :class:`TrackerState`, update it and return
it. Nothing here touches storage or the network; callers decide when to
persist (see ``services.viewing_session``).
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from watch_progress.services.intervals import (
    Interval,
    MERGE_TOLERANCE,
    MIN_WATCH_TIME,
    intervals_from_raw,
    merge_intervals,
    total_watched,
)

_log = logging.getLogger(__name__)

SKIP_THRESHOLD = 10.0
COMPLETION_THRESHOLD = 99.5


@dataclass(frozen=True, slots=True)
class TrackerConfig:
    skip_threshold: float = SKIP_THRESHOLD
    min_watch_time: float = MIN_WATCH_TIME
    merge_tolerance: float = MERGE_TOLERANCE
    completion_threshold: float = COMPLETION_THRESHOLD

    @classmethod
    def from_settings(cls, settings) -> TrackerConfig:
        return cls(
            skip_threshold=settings.skip_threshold,
            min_watch_time=settings.min_watch_time,
            merge_tolerance=settings.merge_tolerance,
            completion_threshold=settings.completion_threshold,
        )


@dataclass(slots=True)
class TrackerState:
    config: TrackerConfig = field(default_factory=TrackerConfig)
    intervals: list[Interval] = field(default_factory=list)
    open_interval: Interval | None = None
    last_position: float = 0.0
    skipped: bool = False
    completed: bool = False
    playing: bool = False
    seeking: bool = False
    duration: float | None = None
    total_watched: float = 0.0
    percentage: float = 0.0

    @property
    def has_duration(self) -> bool:
        return self.duration is not None and math.isfinite(self.duration) and self.duration > 0


def is_valid_duration(duration: float | None) -> bool:
    try:
        return duration is not None and math.isfinite(duration) and duration > 0
    except TypeError:
        return False


def _open_at(state: TrackerState, t: float) -> None:
    state.open_interval = Interval(t, t)


def _commit(state: TrackerState, interval: Interval) -> None:
    if interval.end > interval.start:
        state.intervals.append(Interval(interval.start, interval.end))


def is_restart(state: TrackerState, t: float) -> bool:
    """Play from zero after earlier progress means the viewer is starting over."""
    return t == 0 and state.last_position > 0 and not state.completed


def reset(state: TrackerState) -> TrackerState:
    if state.completed:
        # Latched records are never cleared by the tracker
        return state
    state.intervals = []
    state.open_interval = None
    state.total_watched = 0.0
    state.percentage = 0.0
    state.last_position = 0.0
    state.skipped = False
    _log.debug('tracker reset')
    return state


def handle_play(state: TrackerState, t: float) -> TrackerState:
    state.playing = True
    if is_restart(state, t):
        reset(state)
    _open_at(state, t)
    return state


def handle_time_update(state: TrackerState, t: float) -> TrackerState:
    """Follow the playhead while playing.

    Intervals are tracked even before the duration is known; only the skip
    flag waits for a valid duration.
    """
    if not state.playing:
        return state

    if state.open_interval is None:
        _open_at(state, t)

    threshold = state.config.skip_threshold
    current = state.open_interval
    jump = abs(t - state.last_position)
    if jump > threshold:
        if state.has_duration:
            state.skipped = True
        _log.debug('skip detected jump=%.2f from=%.2f to=%.2f', jump, state.last_position, t)
        if current.end == current.start and current.start <= t <= current.start + threshold:
            # Interval was opened by play at the new position; the jump predates it
            current.end = t
        else:
            # Close at the last continuously watched position, not at the jump target
            _commit(state, current)
            _open_at(state, t)
    elif t < current.end:
        # Short rewind: keep what was watched and continue from the earlier spot
        _commit(state, current)
        _open_at(state, t)
    else:
        current.end = t

    state.last_position = t
    return state


def handle_pause(state: TrackerState, t: float) -> TrackerState:
    state.playing = False
    current = state.open_interval
    state.open_interval = None
    if current is None:
        return state
    current.end = t
    if current.span >= state.config.min_watch_time:
        state.intervals.append(current)
        compute_progress(state)
    return state


def handle_seek_start(state: TrackerState) -> TrackerState:
    state.seeking = True
    return state


def handle_seek_end(state: TrackerState, t: float) -> TrackerState:
    state.seeking = False
    return handle_time_update(state, t)


def handle_metadata(state: TrackerState, duration: float | None) -> TrackerState:
    if not is_valid_duration(duration):
        _log.warning('ignoring invalid duration %r', duration)
        return state
    state.duration = float(duration)
    return state


def close_open_interval(state: TrackerState, t: float, reopen: bool = True) -> Interval | None:
    """Commit the open interval up to ``t`` if it meets the minimum watch floor.

    Returns the committed interval. With ``reopen`` a fresh interval starts at
    ``t`` so tracking continues seamlessly.
    """
    current = state.open_interval
    if current is None:
        return None
    committed = None
    if t - current.start >= state.config.min_watch_time:
        committed = Interval(current.start, t)
        state.intervals.append(committed)
        state.open_interval = Interval(t, t) if reopen else None
    elif not reopen:
        state.open_interval = None
    return committed


def compute_progress(state: TrackerState) -> float:
    """Recompute the watched percentage, latching completion when earned."""
    if state.completed:
        state.percentage = 100.0
        return 100.0
    if not state.has_duration:
        state.percentage = 0.0
        return 0.0

    cfg = state.config
    state.total_watched = total_watched(merged_intervals(state))
    percentage = min(state.total_watched / state.duration * 100.0, 100.0)

    if percentage >= cfg.completion_threshold and not state.skipped:
        state.completed = True
        state.percentage = 100.0
        _log.info('video watched to completion total=%.2fs duration=%.2fs', state.total_watched, state.duration)
        return 100.0

    state.percentage = percentage
    return percentage


def merged_intervals(state: TrackerState) -> list[Interval]:
    cfg = state.config
    return merge_intervals(state.intervals, state.duration, cfg.merge_tolerance, cfg.min_watch_time)


def resume_position(state: TrackerState) -> float:
    if state.last_position > 0 and not state.completed:
        return state.last_position
    return 0.0


def seed_state(
    record,
    config: TrackerConfig | None = None,
    duration: float | None = None,
) -> TrackerState:
    """Build a fresh tracker state from a persisted ``ProgressRecord``."""
    state = TrackerState(config=config or TrackerConfig())
    if is_valid_duration(duration):
        state.duration = float(duration)
    if record is None:
        return state
    state.intervals = intervals_from_raw(record.intervals)
    state.last_position = float(record.last_position or 0.0)
    state.completed = bool(record.is_completed)
    state.total_watched = float(record.total_watched or 0.0)
    compute_progress(state)
    return state
