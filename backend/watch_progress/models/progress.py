from __future__ import annotations
from sqlalchemy import Integer, String, DateTime, JSON, Float, Boolean, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from watch_progress.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VideoProgress(Base):
    __tablename__ = 'video_progress'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    video_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    # merged watched spans: [{"start": s, "end": e}, ...]
    intervals: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    last_position: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    # denormalized sum of merged spans, refreshed on every merge
    total_watched_s: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    # last known video duration reported by a client
    duration_s: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_watched_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'video_id', name='uq_video_progress_user_video'),
        Index('ix_video_progress_last_watched', 'user_id', 'last_watched_at'),
    )
