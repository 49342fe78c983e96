"""One viewer watching one video.

A :class:`ViewingSession` is driven by the player host's event callbacks, all
on a single event loop. Tracker mutation and local cache writes happen
synchronously inside the handlers; remote writes are detached tasks whose
outcome only updates :attr:`ViewingSession.error`.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from watch_progress.db.local_cache import CorruptCacheError, FileCacheStore, ProgressCache
from watch_progress.schemas.progress import ProgressRecord, ProgressUpdateEvent
from watch_progress.services import tracker
from watch_progress.services.intervals import Interval
from watch_progress.services.notifier import ProgressNotifier, WebSocketNotifier
from watch_progress.services.reconciler import guard_reported_progress, reconcile
from watch_progress.services.remote_progress import ProgressAPIClient
from watch_progress.services.sync_scheduler import SyncScheduler
from watch_progress.services.tracker import TrackerConfig, TrackerState

_log = logging.getLogger(__name__)

LOAD_CACHE_ERROR = 'Failed to load saved progress'
LOAD_REMOTE_ERROR = 'Failed to load progress from server'
SAVE_LOCAL_ERROR = 'Failed to save progress locally'
SAVE_REMOTE_ERROR = 'Failed to save progress'
RESET_REMOTE_ERROR = 'Failed to reset progress on server'


class ViewingSession:
    def __init__(
        self,
        user_id: str,
        video_id: str,
        cache: ProgressCache,
        remote: ProgressAPIClient | None = None,
        notifier: ProgressNotifier | None = None,
        config: TrackerConfig | None = None,
        scheduler: SyncScheduler | None = None,
        duration: float | None = None,
    ) -> None:
        self.user_id = user_id
        self.video_id = video_id
        self.cache = cache
        self.remote = remote
        self.notifier = notifier
        self.state = TrackerState(config=config or TrackerConfig())
        if duration is not None:
            tracker.handle_metadata(self.state, duration)
        self.scheduler = scheduler or SyncScheduler()
        self.progress = 0.0
        self.display_progress = 0.0
        self.error: str | None = None
        self.is_loading = False
        self.is_initialized = False
        self.server_record: ProgressRecord | None = None
        self._previous_progress: float | None = None
        self._unsynced: list[Interval] = []
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, user_id: str, video_id: str, settings, duration: float | None = None) -> ViewingSession:
        """Session backed by the on-disk cache, the configured server and push channel."""
        return cls(
            user_id,
            video_id,
            ProgressCache(FileCacheStore(settings.cache_dir)),
            remote=ProgressAPIClient.from_settings(settings),
            notifier=WebSocketNotifier.from_settings(settings),
            config=TrackerConfig.from_settings(settings),
            scheduler=SyncScheduler.from_settings(settings),
            duration=duration,
        )

    # Loading

    async def load(self) -> ProgressRecord | None:
        """Seed the tracker from the cached and remote records."""
        self.is_loading = True
        self.is_initialized = False
        cached = None
        try:
            cached = self.cache.load(self.user_id, self.video_id)
        except CorruptCacheError as exc:
            _log.warning('%s: %s', LOAD_CACHE_ERROR, exc)
            self.error = LOAD_CACHE_ERROR

        remote_record = None
        if self.remote is not None:
            try:
                remote_record = await self.remote.get_progress(self.video_id, self.user_id)
                self.server_record = remote_record
                # a reachable server supersedes an unreadable cache
                self.error = None
            except (httpx.HTTPError, ValueError) as exc:
                _log.error('%s video=%s: %s', LOAD_REMOTE_ERROR, self.video_id, exc)
                self.error = LOAD_REMOTE_ERROR

        chosen = reconcile(cached, remote_record)
        duration = self.state.duration
        if duration is None:
            duration = self.cache.load_duration(self.video_id)
        self.state = tracker.seed_state(chosen, self.state.config, duration)
        self._recompute()
        self.is_loading = False
        self.is_initialized = True
        _log.debug(
            'session loaded user=%s video=%s source=%s progress=%.1f',
            self.user_id, self.video_id,
            'none' if chosen is None else ('cache' if chosen is cached else 'remote'),
            self.progress,
        )
        return chosen

    # Playback events

    def on_play(self, t: float) -> None:
        if tracker.is_restart(self.state, t):
            _log.debug('play from start after progress; starting over video=%s', self.video_id)
            self.reset()
        tracker.handle_play(self.state, t)

    def on_pause(self, t: float) -> None:
        before = len(self.state.intervals)
        tracker.handle_pause(self.state, t)
        if self._collect_new(before):
            self._recompute()
            self._save_local()

    def on_time_update(self, t: float, now: float | None = None) -> None:
        if not self.state.playing:
            return
        before = len(self.state.intervals)
        tracker.handle_time_update(self.state, t)
        self._collect_new(before)
        if not self.state.has_duration:
            # cadences wait for metadata; the open interval keeps growing
            return

        decision = self.scheduler.tick(now)
        if decision.ui:
            self._recompute()
        if decision.persist:
            self._persist(t)

    def on_seek_start(self) -> None:
        tracker.handle_seek_start(self.state)

    def on_seek_end(self, t: float, now: float | None = None) -> None:
        self.state.seeking = False
        self.on_time_update(t, now)

    def on_metadata(self, duration: float | None) -> None:
        previous = self.state.duration
        tracker.handle_metadata(self.state, duration)
        if self.state.duration != previous:
            self.cache.save_duration(self.video_id, self.state.duration)
            self._recompute()

    def reset(self) -> bool:
        """Clear local and remote progress; refused once the video is completed."""
        if self.state.completed:
            return False
        tracker.reset(self.state)
        self._unsynced.clear()
        self._previous_progress = None
        self._recompute()
        try:
            self.cache.clear(self.user_id, self.video_id)
        except OSError as exc:
            _log.error('%s video=%s: %s', SAVE_LOCAL_ERROR, self.video_id, exc)
            self.error = SAVE_LOCAL_ERROR
        self._dispatch(self._reset_remote, RESET_REMOTE_ERROR)
        return True

    def close(self, t: float | None = None) -> None:
        """Flush the open interval like a pause before the player detaches."""
        if self.state.open_interval is not None:
            self.on_pause(self.state.last_position if t is None else t)
        if self._unsynced:
            self._dispatch(self._sync_remote, SAVE_REMOTE_ERROR)

    async def wait_for_sync(self) -> None:
        """Await in-flight remote writes. Never called from the playback path."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        """Finish pending writes and release the HTTP client and push connection."""
        await self.wait_for_sync()
        if isinstance(self.remote, ProgressAPIClient):
            await self.remote.close()
        if isinstance(self.notifier, WebSocketNotifier):
            await self.notifier.close()

    # Presentation

    def snapshot(self) -> dict[str, Any]:
        return {
            'videoId': self.video_id,
            'userId': self.user_id,
            'progress': self.display_progress,
            'totalWatched': self.state.total_watched,
            'skippedAhead': self.state.skipped,
            'isCompleted': self.state.completed,
            'lastPosition': self.state.last_position,
            'resumePosition': tracker.resume_position(self.state),
            'error': self.error,
            'isLoading': self.is_loading,
            'isInitialized': self.is_initialized,
        }

    # Internals

    def _collect_new(self, before: int) -> bool:
        added = self.state.intervals[before:] if len(self.state.intervals) > before else []
        self._unsynced.extend(i.copy() for i in added)
        return bool(added)

    def _recompute(self) -> float:
        raw = tracker.compute_progress(self.state)
        self.display_progress = guard_reported_progress(raw, self.state.completed, self._previous_progress)
        self._previous_progress = raw
        self.progress = raw
        return raw

    def _persist(self, t: float) -> None:
        committed = tracker.close_open_interval(self.state, t)
        if committed is not None:
            self._unsynced.append(committed.copy())
        self._recompute()
        self._save_local()
        if self._unsynced:
            self._dispatch(self._sync_remote, SAVE_REMOTE_ERROR)

    def _save_local(self) -> None:
        try:
            self.cache.save(
                self.user_id,
                self.video_id,
                self.state.intervals,
                self.state.last_position,
                self.state.total_watched,
                self.state.completed,
            )
        except OSError as exc:
            _log.error('%s video=%s: %s', SAVE_LOCAL_ERROR, self.video_id, exc)
            self.error = SAVE_LOCAL_ERROR

    def _dispatch(self, factory: Callable[[], Awaitable[Any]], error_message: str) -> asyncio.Task | None:
        if self.remote is None:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _log.warning('no running event loop; remote sync skipped video=%s', self.video_id)
            return None
        task = loop.create_task(factory())
        self._pending.add(task)
        task.add_done_callback(lambda done: self._settle(done, error_message))
        return task

    def _settle(self, task: asyncio.Task, error_message: str) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _log.error('%s video=%s: unexpected %r', error_message, self.video_id, exc)
            self.error = error_message

    async def _sync_remote(self) -> ProgressRecord | None:
        batch, self._unsynced = self._unsynced, []
        record = None
        for idx, interval in enumerate(batch):
            try:
                record = await self.remote.update_progress(
                    self.video_id,
                    self.user_id,
                    interval,
                    self.state.last_position,
                    is_completed=self.state.completed,
                    duration=self.state.duration,
                )
            except (httpx.HTTPError, ValueError) as exc:
                _log.error('%s video=%s: %s', SAVE_REMOTE_ERROR, self.video_id, exc)
                self.error = SAVE_REMOTE_ERROR
                # keep the unsent tail for the next cadence tick
                self._unsynced[:0] = batch[idx:]
                return None

        if record is None:
            return None
        self.server_record = record
        self.error = None
        self._save_local()
        if self.notifier is not None:
            await self.notifier.emit(ProgressUpdateEvent(
                video_id=self.video_id,
                user_id=self.user_id,
                progress=record.model_dump(mode='json', by_alias=True),
            ))
        _log.debug('progress saved to server video=%s total=%.2f', self.video_id, record.total_watched)
        return record

    async def _reset_remote(self) -> None:
        try:
            await self.remote.reset_progress(self.video_id, self.user_id)
        except (httpx.HTTPError, ValueError) as exc:
            _log.error('%s video=%s: %s', RESET_REMOTE_ERROR, self.video_id, exc)
            self.error = RESET_REMOTE_ERROR
