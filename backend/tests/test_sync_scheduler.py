"""Tests for the event-driven UI / persistence cadences."""

from watch_progress.services.sync_scheduler import CadenceTimer, SyncDecision, SyncScheduler


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestCadenceTimer:
    def test_fires_once_per_interval(self):
        timer = CadenceTimer(interval=1.0, last_fired=0.0)
        assert timer.fire(0.5) is False
        assert timer.fire(1.0) is True
        assert timer.last_fired == 1.0
        assert timer.fire(1.5) is False
        assert timer.fire(2.2) is True


class TestSyncScheduler:
    def test_nothing_due_immediately(self):
        clock = FakeClock()
        scheduler = SyncScheduler(clock=clock)
        assert scheduler.tick() == SyncDecision(ui=False, persist=False)

    def test_ui_cadence_independent_of_persist(self):
        clock = FakeClock()
        scheduler = SyncScheduler(ui_interval=1.0, persist_interval=5.0, clock=clock)
        fired = []
        for step in range(1, 11):
            clock.now = 1000.0 + step
            fired.append(scheduler.tick())
        assert sum(d.ui for d in fired) == 10
        assert [i for i, d in enumerate(fired, 1) if d.persist] == [5, 10]

    def test_timers_reset_to_firing_time(self):
        clock = FakeClock()
        scheduler = SyncScheduler(ui_interval=1.0, persist_interval=5.0, clock=clock)
        assert scheduler.tick(1007.0) == SyncDecision(ui=True, persist=True)
        assert scheduler.tick(1008.0) == SyncDecision(ui=True, persist=False)
        assert scheduler.tick(1012.0) == SyncDecision(ui=True, persist=True)

    def test_no_events_means_no_sync(self):
        # Cadences only advance when tick() is called by an incoming event
        clock = FakeClock()
        scheduler = SyncScheduler(clock=clock)
        clock.now += 3600
        assert scheduler.persist.last_fired == 1000.0
        assert scheduler.tick().persist is True

    def test_from_settings(self):
        class _Settings:
            ui_interval = 2.0
            persist_interval = 10.0
        scheduler = SyncScheduler.from_settings(_Settings(), clock=FakeClock())
        assert scheduler.ui.interval == 2.0
        assert scheduler.persist.interval == 10.0
