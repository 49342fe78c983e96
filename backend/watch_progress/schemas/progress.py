from __future__ import annotations
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional

from watch_progress.services.intervals import Interval


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ProgressRecord(CamelModel):
    """Progress of one user on one video, as stored remotely and exchanged over HTTP."""
    user_id: str
    video_id: str
    intervals: List[Interval] = []
    last_position: float = 0.0
    total_watched: float = 0.0
    last_watched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_completed: bool = False

    @field_validator('last_watched_at')
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        # SQLite drops tzinfo; stored timestamps are UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class ProgressUpdateIn(CamelModel):
    interval: Interval
    last_position: float
    # Optional extensions: lets a client persist its completion latch and the
    # duration used to validate intervals server side.
    is_completed: bool = False
    duration: Optional[float] = None


class ProgressResetResult(CamelModel):
    video_id: str
    cleared: bool


class ProgressSummary(CamelModel):
    user_id: str
    videos: List[ProgressRecord] = []
    completed: int = 0
    total: int = 0
    overall_progress: int = 0


class ProgressUpdateEvent(CamelModel):
    """Payload of the push side channel."""
    type: str = 'progress-update'
    video_id: str
    user_id: str
    progress: Optional[dict[str, Any]] = None
