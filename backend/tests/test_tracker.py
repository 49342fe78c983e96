"""Interval tracker state machine tests (no player, no storage)."""

import pytest
from hypothesis import given, strategies as st

from watch_progress.schemas.progress import ProgressRecord
from watch_progress.services import tracker
from watch_progress.services.intervals import Interval
from watch_progress.services.tracker import TrackerState


def _state(duration=100.0, **kwargs):
    state = TrackerState(**kwargs)
    tracker.handle_metadata(state, duration)
    return state


def _play_through(state, start, end, step=0.25):
    """Play from ``start`` to ``end`` emitting regular position samples, then pause."""
    tracker.handle_play(state, start)
    t = start
    while t < end:
        t = min(end, t + step)
        tracker.handle_time_update(state, t)
    tracker.handle_pause(state, end)
    return state


class TestPlayback:
    def test_continuous_watch_extends_single_interval(self):
        state = _state()
        tracker.handle_play(state, 0)
        for t in (0.25, 0.5, 0.75, 1.0, 1.25):
            tracker.handle_time_update(state, t)
        assert state.open_interval == Interval(0, 1.25)
        assert state.last_position == 1.25
        assert state.skipped is False

    def test_pause_commits_interval_meeting_floor(self):
        state = _play_through(_state(), 0, 20)
        assert state.intervals == [Interval(0, 20)]
        assert state.open_interval is None
        assert state.playing is False
        assert state.percentage == pytest.approx(20)

    def test_pause_discards_sub_second_interval(self):
        state = _state()
        tracker.handle_play(state, 10)
        tracker.handle_time_update(state, 10.5)
        tracker.handle_pause(state, 10.5)
        assert state.intervals == []
        assert tracker.compute_progress(state) == 0

    def test_time_update_ignored_while_paused(self):
        state = _state()
        tracker.handle_time_update(state, 30)
        assert state.open_interval is None
        assert state.last_position == 0

    def test_tracks_without_duration_but_reports_zero(self):
        state = TrackerState()
        tracker.handle_play(state, 0)
        tracker.handle_time_update(state, 5)
        assert state.open_interval == Interval(0, 5)
        assert state.last_position == 5
        assert tracker.compute_progress(state) == 0

    def test_jump_without_duration_splits_but_is_not_a_skip(self):
        state = TrackerState()
        tracker.handle_play(state, 0)
        for t in range(1, 6):
            tracker.handle_time_update(state, float(t))
        tracker.handle_time_update(state, 60)
        assert state.skipped is False
        assert state.intervals == [Interval(0, 5)]
        assert state.open_interval == Interval(60, 60)

    def test_late_metadata_keeps_continuous_watch(self):
        state = TrackerState()
        tracker.handle_play(state, 0)
        t = 0.0
        while t < 30:
            t += 0.25
            tracker.handle_time_update(state, t)
        tracker.handle_metadata(state, 100)
        while t < 99.75:
            t += 0.25
            tracker.handle_time_update(state, t)
        tracker.handle_pause(state, t)
        assert state.skipped is False
        assert tracker.merged_intervals(state) == [Interval(0, 99.75)]
        assert state.completed is True
        assert tracker.compute_progress(state) == 100

    def test_seek_end_reevaluates_like_time_update(self):
        state = _state()
        tracker.handle_play(state, 0)
        for t in (1, 2, 3, 4, 5):
            tracker.handle_time_update(state, t)
        tracker.handle_seek_start(state)
        assert state.seeking is True
        tracker.handle_seek_end(state, 60)
        assert state.seeking is False
        assert state.skipped is True
        assert state.intervals == [Interval(0, 5)]
        assert state.open_interval == Interval(60, 60)
        assert state.last_position == 60


class TestSkipDetection:
    def test_play_pause_play_later_flags_skip(self):
        state = _state()
        _play_through(state, 0, 50)
        _play_through(state, 80, 100)
        assert state.skipped is True
        assert tracker.merged_intervals(state) == [Interval(0, 50), Interval(80, 100)]
        assert state.total_watched == pytest.approx(70)
        assert tracker.compute_progress(state) == pytest.approx(70)
        assert state.completed is False

    def test_skip_blocks_latch_even_when_everything_is_covered(self):
        state = _state()
        _play_through(state, 0, 50)
        _play_through(state, 80, 100)
        _play_through(state, 50, 80)
        assert state.total_watched == pytest.approx(100)
        assert state.percentage == pytest.approx(100)
        assert state.completed is False

    def test_backward_jump_also_counts_as_skip(self):
        state = _state()
        tracker.handle_play(state, 0)
        for t in range(1, 16):
            tracker.handle_time_update(state, float(t))
        assert state.skipped is False
        tracker.handle_time_update(state, 2)
        assert state.skipped is True
        assert state.intervals == [Interval(0, 15)]
        assert state.open_interval == Interval(2, 2)

    def test_short_rewind_keeps_watched_span(self):
        state = _state()
        tracker.handle_play(state, 0)
        for t in range(1, 21):
            tracker.handle_time_update(state, float(t))
        tracker.handle_time_update(state, 15)
        tracker.handle_time_update(state, 16)
        tracker.handle_pause(state, 16)
        assert state.skipped is False
        assert tracker.merged_intervals(state) == [Interval(0, 20)]

    def test_jump_within_threshold_is_continuous(self):
        state = _state()
        tracker.handle_play(state, 0)
        tracker.handle_time_update(state, 9.5)
        assert state.skipped is False
        assert state.open_interval == Interval(0, 9.5)

    def test_skipped_region_is_not_counted(self):
        state = _state()
        tracker.handle_play(state, 0)
        for t in range(1, 21):
            tracker.handle_time_update(state, float(t))
        tracker.handle_time_update(state, 70)
        for t in range(71, 81):
            tracker.handle_time_update(state, float(t))
        tracker.handle_pause(state, 80)
        assert tracker.merged_intervals(state) == [Interval(0, 20), Interval(70, 80)]
        assert tracker.compute_progress(state) == pytest.approx(30)


class TestCompletion:
    def test_continuous_watch_latches(self):
        state = _play_through(_state(), 0, 99.6)
        assert state.completed is True
        assert tracker.compute_progress(state) == 100

    def test_latch_survives_emptied_intervals(self):
        state = _play_through(_state(), 0, 99.6)
        state.intervals = []
        assert tracker.compute_progress(state) == 100

    def test_latch_reports_100_without_duration(self):
        state = TrackerState(completed=True)
        assert tracker.compute_progress(state) == 100

    def test_no_duration_reports_zero(self):
        state = TrackerState(intervals=[Interval(0, 50)])
        assert tracker.compute_progress(state) == 0

    def test_duration_change_applies_on_next_recompute(self):
        state = _play_through(_state(duration=200), 0, 50)
        assert state.percentage == pytest.approx(25)
        tracker.handle_metadata(state, 100)
        assert tracker.compute_progress(state) == pytest.approx(50)

    @pytest.mark.parametrize('bad', [0, -5, float('inf'), float('nan'), None, 'abc'])
    def test_invalid_durations_are_ignored(self, bad):
        state = _state(duration=100)
        tracker.handle_metadata(state, bad)
        assert state.duration == 100

    @given(
        st.lists(
            st.tuples(st.floats(min_value=0, max_value=150), st.floats(min_value=0, max_value=150)),
            max_size=20,
        ),
        st.booleans(),
    )
    def test_percentage_is_bounded(self, pairs, skipped):
        state = _state(duration=100, skipped=skipped)
        state.intervals = [Interval(a, b) for a, b in pairs]
        pct = tracker.compute_progress(state)
        assert 0 <= pct <= 100


class TestReset:
    def test_reset_clears_state(self):
        state = _play_through(_state(), 0, 50)
        state.skipped = True
        tracker.reset(state)
        assert state.intervals == []
        assert state.last_position == 0
        assert state.skipped is False
        assert state.percentage == 0

    def test_reset_refused_when_completed(self):
        state = _play_through(_state(), 0, 99.6)
        intervals = list(state.intervals)
        tracker.reset(state)
        assert state.completed is True
        assert state.intervals == intervals
        assert state.last_position == pytest.approx(99.6)

    def test_play_from_zero_after_progress_starts_over(self):
        state = _play_through(_state(), 0, 30)
        assert tracker.is_restart(state, 0)
        tracker.handle_play(state, 0)
        assert state.intervals == []
        assert state.open_interval == Interval(0, 0)

    def test_play_from_zero_after_completion_keeps_progress(self):
        state = _play_through(_state(), 0, 99.6)
        tracker.handle_play(state, 0)
        assert state.completed is True
        assert state.intervals


class TestHelpers:
    def test_close_open_interval_reopens(self):
        state = _state()
        tracker.handle_play(state, 0)
        tracker.handle_time_update(state, 4)
        committed = tracker.close_open_interval(state, 5)
        assert committed == Interval(0, 5)
        assert state.intervals == [Interval(0, 5)]
        assert state.open_interval == Interval(5, 5)

    def test_close_open_interval_below_floor_keeps_open(self):
        state = _state()
        tracker.handle_play(state, 0)
        tracker.handle_time_update(state, 0.5)
        assert tracker.close_open_interval(state, 0.5) is None
        assert state.open_interval == Interval(0, 0.5)

    def test_resume_position(self):
        state = _play_through(_state(), 0, 42)
        assert tracker.resume_position(state) == 42
        done = _play_through(_state(), 0, 99.6)
        assert tracker.resume_position(done) == 0

    def test_seed_state_from_record(self):
        record = ProgressRecord(
            user_id='u1', video_id='v1',
            intervals=[Interval(0, 30), Interval(30.05, 60)],
            last_position=60, total_watched=60, is_completed=False,
        )
        state = tracker.seed_state(record, duration=120)
        assert state.last_position == 60
        assert state.percentage == pytest.approx(50)
        assert state.intervals == [Interval(0, 30), Interval(30.05, 60)]
        assert state.intervals[0] is not record.intervals[0]
