from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

MIN_WATCH_TIME = 1.0
MERGE_TOLERANCE = 0.1


@dataclass(slots=True)
class Interval:
    """Half-open watched span of video time, in seconds."""
    start: float
    end: float

    @property
    def span(self) -> float:
        return self.end - self.start

    def copy(self) -> Interval:
        return Interval(self.start, self.end)


def _valid_duration(duration: float | None) -> bool:
    return duration is not None and math.isfinite(duration) and duration > 0


def is_valid_interval(interval: Interval, duration: float | None = None, min_watch: float = MIN_WATCH_TIME) -> bool:
    if interval.end <= interval.start:
        return False
    if interval.span < min_watch:
        return False
    if _valid_duration(duration):
        if interval.start >= duration:
            return False
        if interval.span > duration:
            return False
    return True


def filter_valid_intervals(
    intervals: Iterable[Interval],
    duration: float | None = None,
    min_watch: float = MIN_WATCH_TIME,
) -> list[Interval]:
    """Drop invalid spans and clamp the rest to the video bounds.

    Without a usable duration only the duration-independent rules apply and
    spans are clamped at zero.
    """
    bounded = _valid_duration(duration)
    out: list[Interval] = []
    for interval in intervals:
        if not is_valid_interval(interval, duration, min_watch):
            continue
        start = max(0.0, interval.start)
        end = min(duration, interval.end) if bounded else interval.end
        # clamping can shrink a span below the floor
        if end - start < min_watch or end <= start:
            continue
        out.append(Interval(start, end))
    return out


def merge_intervals(
    intervals: Iterable[Interval],
    duration: float | None = None,
    tolerance: float = MERGE_TOLERANCE,
    min_watch: float = MIN_WATCH_TIME,
) -> list[Interval]:
    """Filter, sort and fold intervals into a disjoint ascending set.

    Two neighbours merge when the next one starts within ``tolerance`` of the
    running end. Input objects are never mutated.
    """
    merged: list[Interval] = []
    valid = filter_valid_intervals(intervals, duration, min_watch)
    for seg in sorted(valid, key=lambda s: (s.start, s.end)):
        if not merged:
            merged.append(seg)
            continue
        last = merged[-1]
        if seg.start <= last.end + tolerance:
            last.end = max(last.end, seg.end)
        else:
            merged.append(seg)
    return merged


def total_watched(merged: Iterable[Interval]) -> float:
    return sum(max(0.0, seg.span) for seg in merged)


def intervals_from_raw(raw: Iterable) -> list[Interval]:
    """Coerce stored ``{start, end}`` mappings or pairs into intervals, skipping junk."""
    out: list[Interval] = []
    for item in raw or []:
        try:
            if isinstance(item, Interval):
                out.append(item.copy())
            elif isinstance(item, dict):
                out.append(Interval(float(item['start']), float(item['end'])))
            else:
                start, end = item
                out.append(Interval(float(start), float(end)))
        except (KeyError, TypeError, ValueError):
            continue
    return out


def intervals_to_raw(intervals: Iterable[Interval]) -> list[dict[str, float]]:
    return [{'start': float(i.start), 'end': float(i.end)} for i in intervals]
