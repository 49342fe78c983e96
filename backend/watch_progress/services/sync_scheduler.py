from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

UI_UPDATE_INTERVAL = 1.0
PROGRESS_UPDATE_INTERVAL = 5.0


@dataclass(slots=True)
class CadenceTimer:
    interval: float
    last_fired: float

    def due(self, now: float) -> bool:
        return now - self.last_fired >= self.interval

    def fire(self, now: float) -> bool:
        if not self.due(now):
            return False
        self.last_fired = now
        return True


@dataclass(frozen=True, slots=True)
class SyncDecision:
    ui: bool = False
    persist: bool = False


class SyncScheduler:
    """Two independent cadences evaluated on incoming playback events.

    Nothing runs in the background: a paused player sends no time updates,
    so neither cadence advances.
    """

    def __init__(
        self,
        ui_interval: float = UI_UPDATE_INTERVAL,
        persist_interval: float = PROGRESS_UPDATE_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        now = clock()
        self.ui = CadenceTimer(ui_interval, now)
        self.persist = CadenceTimer(persist_interval, now)

    @classmethod
    def from_settings(cls, settings, clock: Callable[[], float] = time.monotonic) -> SyncScheduler:
        return cls(settings.ui_interval, settings.persist_interval, clock=clock)

    def tick(self, now: float | None = None) -> SyncDecision:
        if now is None:
            now = self._clock()
        return SyncDecision(ui=self.ui.fire(now), persist=self.persist.fire(now))
