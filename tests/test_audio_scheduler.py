"""Tests for the segment scheduler module."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from livescribe.audio.scheduler import (
    AdaptivePolicy,
    BoundaryReason,
    FixedPolicy,
    IntervalTimer,
    SegmentScheduler,
    build_policy,
)
from livescribe.config import SegmentationConfig
from livescribe.errors import ConfigError

TICK_MS = 20  # 50Hz sampling


def run_samples(scheduler, volumes, start_ms=0, has_audio=True):
    """Feed one volume per tick and collect ``(time, reason)`` boundaries."""
    boundaries = []
    now = start_ms
    for volume in volumes:
        now += TICK_MS
        reason = scheduler.evaluate(volume, now, has_audio)
        if reason is not None:
            boundaries.append((now, reason))
    return boundaries, now


def speech(duration_ms, volume=0.3):
    return [volume] * (duration_ms // TICK_MS)


def silence(duration_ms):
    return [0.0] * (duration_ms // TICK_MS)


class TestPolicies:
    """Tests for policy dataclasses and build_policy."""

    def test_modes(self, adaptive_policy, fixed_policy):
        """Test policy mode names."""
        assert adaptive_policy.mode == "smart"
        assert fixed_policy.mode == "time"

    def test_policies_are_immutable(self, adaptive_policy):
        """Test policies cannot change once built."""
        with pytest.raises(AttributeError):
            adaptive_policy.silence_timeout_ms = 100

    def test_invalid_fixed_interval(self):
        """Test non-positive interval is rejected."""
        with pytest.raises(ValueError):
            FixedPolicy(interval_ms=0)

    def test_invalid_adaptive_values(self):
        """Test invalid adaptive values are rejected."""
        with pytest.raises(ValueError):
            AdaptivePolicy(silence_threshold=1.5, silence_timeout_ms=800, max_segment_ms=10000)
        with pytest.raises(ValueError):
            AdaptivePolicy(silence_threshold=0.01, silence_timeout_ms=0, max_segment_ms=10000)

    def test_build_smart_policy(self):
        """Test smart config becomes an AdaptivePolicy."""
        policy = build_policy(SegmentationConfig(mode="smart", silence_threshold=0.02))
        assert isinstance(policy, AdaptivePolicy)
        assert policy.silence_threshold == 0.02
        assert policy.silence_timeout_ms == 800
        assert policy.max_segment_ms == 10000

    def test_build_time_policy(self):
        """Test time config becomes a FixedPolicy."""
        policy = build_policy(SegmentationConfig(mode="time", chunk_duration_ms=4000))
        assert policy == FixedPolicy(interval_ms=4000)

    def test_build_policy_validates(self):
        """Test out-of-range options fail before a policy exists."""
        with pytest.raises(ConfigError):
            build_policy(SegmentationConfig(silence_timeout_ms=100))


class TestSegmentScheduler:
    """Tests for SegmentScheduler class."""

    @pytest.fixture
    def scheduler(self, adaptive_policy):
        """Create scheduler started at t=0."""
        scheduler = SegmentScheduler(adaptive_policy)
        scheduler.begin(0)
        return scheduler

    def test_begin_resets_timestamps(self, scheduler):
        """Test begin sets segment start and last speech."""
        scheduler.begin(1234)
        assert scheduler.segment_start == 1234
        assert scheduler.last_speech == 1234

    def test_speech_records_last_speech_time(self, scheduler):
        """Test loud samples update last speech time."""
        assert scheduler.evaluate(0.5, 100, True) is None
        assert scheduler.last_speech == 100

    def test_threshold_is_exclusive(self, scheduler):
        """Test a sample exactly at the threshold counts as silence."""
        scheduler.evaluate(0.01, 100, True)
        assert scheduler.last_speech == 0

    def test_speech_then_silence_scenario(self, scheduler):
        """Test 2000ms speech then 900ms silence gives one silence boundary near 2800ms."""
        boundaries, _ = run_samples(scheduler, speech(2000) + silence(900))

        assert len(boundaries) == 1
        at, reason = boundaries[0]
        assert reason is BoundaryReason.SILENCE_DETECTED
        assert 2800 <= at <= 2800 + 2 * TICK_MS

    def test_silence_shorter_than_timeout(self, scheduler):
        """Test a short pause does not end the segment."""
        boundaries, _ = run_samples(scheduler, speech(1000) + silence(700) + speech(500))
        assert boundaries == []

    def test_silence_resets_after_boundary(self, scheduler):
        """Test timestamps reset to the boundary time."""
        boundaries, _ = run_samples(scheduler, speech(1000) + silence(900))
        at, _ = boundaries[0]
        assert scheduler.segment_start == at
        assert scheduler.last_speech == at

    def test_no_silence_boundary_without_audio(self, scheduler):
        """Test an empty buffer never triggers a silence boundary."""
        boundaries, _ = run_samples(scheduler, speech(1000) + silence(3000), has_audio=False)
        assert boundaries == []

    def test_no_silence_boundary_while_idle(self, scheduler):
        """Test pure silence shorter than the cap produces no boundaries."""
        boundaries, _ = run_samples(scheduler, silence(10000))
        assert boundaries == []

    def test_idle_silence_is_capped(self, scheduler):
        """Test a quiet segment holding audio is cut every max_segment_ms."""
        boundaries, _ = run_samples(scheduler, silence(35000))

        assert [reason for _, reason in boundaries] == [BoundaryReason.MAX_DURATION_EXCEEDED] * 3
        starts = [0] + [at for at, _ in boundaries]
        assert all(b - a <= 10000 + TICK_MS for a, b in zip(starts, starts[1:]))

    def test_idle_silence_without_audio_is_not_capped(self, scheduler):
        """Test an empty segment is never cut, however long the silence."""
        boundaries, _ = run_samples(scheduler, silence(35000), has_audio=False)
        assert boundaries == []

    def test_long_pause_after_speech_is_capped(self, scheduler):
        """Test silence after a silence boundary is still bounded in length."""
        boundaries, _ = run_samples(scheduler, speech(2000) + silence(60000) + speech(100))

        reasons = [reason for _, reason in boundaries]
        assert reasons[0] is BoundaryReason.SILENCE_DETECTED
        assert set(reasons[1:]) == {BoundaryReason.MAX_DURATION_EXCEEDED}
        times = [at for at, _ in boundaries]
        assert all(b - a <= 10000 + TICK_MS for a, b in zip(times, times[1:]))

    def test_no_repeat_boundary_after_silence_boundary(self, scheduler):
        """Test continued silence after a boundary does not cut again."""
        boundaries, _ = run_samples(scheduler, speech(1000) + silence(5000))
        assert len(boundaries) == 1

    def test_silence_boundary_iff_timeout_exceeded(self, adaptive_policy):
        """Test silence boundary appears exactly when the pause exceeds the timeout."""
        for pause_ms in range(100, 2000, 100):
            scheduler = SegmentScheduler(adaptive_policy)
            scheduler.begin(0)
            boundaries, _ = run_samples(scheduler, speech(1000) + silence(pause_ms))
            expected = pause_ms > adaptive_policy.silence_timeout_ms
            assert bool(boundaries) == expected, pause_ms

    @pytest.mark.parametrize("duration_ms", [10000, 15000, 25000, 35000, 61000])
    def test_continuous_speech_max_duration(self, scheduler, duration_ms):
        """Test continuous speech is cut every max_segment_ms."""
        boundaries, _ = run_samples(scheduler, speech(duration_ms))

        reasons = {reason for _, reason in boundaries}
        expected = duration_ms // 10000
        assert abs(len(boundaries) - expected) <= 1
        if boundaries:
            assert reasons == {BoundaryReason.MAX_DURATION_EXCEEDED}

    def test_max_duration_resets_segment_start(self, scheduler):
        """Test segment start moves to the boundary time."""
        boundaries, _ = run_samples(scheduler, speech(10100))
        at, _ = boundaries[0]
        assert at > 10000
        assert scheduler.segment_start == at

    def test_speech_tail_after_max_duration_can_end_on_silence(self, scheduler):
        """Test speech continuing past a max-duration cut still ends on the next pause."""
        boundaries, _ = run_samples(scheduler, speech(10100) + silence(900))
        assert [reason for _, reason in boundaries] == [
            BoundaryReason.MAX_DURATION_EXCEEDED,
            BoundaryReason.SILENCE_DETECTED,
        ]

    def test_boundary_callbacks(self, scheduler):
        """Test boundary callbacks receive the reason."""
        callback = MagicMock()
        scheduler.on_boundary(callback)

        run_samples(scheduler, speech(1000) + silence(900))

        callback.assert_called_once_with(BoundaryReason.SILENCE_DETECTED)

    def test_boundary_callback_error_handling(self, scheduler):
        """Test callback errors are caught."""
        def error_callback(reason):
            raise ValueError("Callback error")

        scheduler.on_boundary(error_callback)

        boundaries, _ = run_samples(scheduler, speech(1000) + silence(900))
        assert len(boundaries) == 1

    def test_evaluate_ignored_under_fixed_policy(self, fixed_policy):
        """Test volume never ends a fixed-interval segment."""
        scheduler = SegmentScheduler(fixed_policy)
        scheduler.begin(0)
        boundaries, _ = run_samples(scheduler, speech(20000) + silence(5000))
        assert boundaries == []

    def test_interval_elapsed(self, fixed_policy):
        """Test fixed ticks always emit a boundary."""
        scheduler = SegmentScheduler(fixed_policy)
        callback = MagicMock()
        scheduler.on_boundary(callback)

        reason = scheduler.interval_elapsed(3000)

        assert reason is BoundaryReason.FIXED_INTERVAL_ELAPSED
        assert scheduler.segment_start == 3000
        callback.assert_called_once_with(BoundaryReason.FIXED_INTERVAL_ELAPSED)


class FakeClock:
    """Monotonic clock advanced by the timer's own waits."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestIntervalTimer:
    """Tests for IntervalTimer class."""

    def test_fixed_interval_scenario(self):
        """Test 3000ms interval over 10000ms fires at 3000, 6000 and 9000ms."""
        clock = FakeClock()
        fired = []
        timer = IntervalTimer(3000, lambda: fired.append(clock.now), clock=clock)

        # Drive the timer loop synchronously by replacing its wait
        waits = iter(range(1000))

        def fake_wait(timeout):
            next(waits)
            clock.now += timeout
            return clock.now > 10.0

        timer._stop_event.wait = fake_wait
        timer._run()

        assert fired == pytest.approx([3.0, 6.0, 9.0])

    def test_start_and_stop(self):
        """Test timer fires repeatedly on a real thread and stops promptly."""
        ticks = threading.Event()
        count = []

        def callback():
            count.append(1)
            if len(count) >= 3:
                ticks.set()

        timer = IntervalTimer(10, callback)
        timer.start()
        assert timer.is_running()
        assert ticks.wait(2.0)
        timer.stop()

        assert not timer.is_running()
        settled = len(count)
        time.sleep(0.05)
        assert len(count) == settled

    def test_callback_error_handling(self):
        """Test callback errors don't kill the timer."""
        ticks = threading.Event()
        calls = []

        def callback():
            calls.append(1)
            if len(calls) >= 2:
                ticks.set()
            raise ValueError("Tick error")

        timer = IntervalTimer(10, callback)
        timer.start()
        assert ticks.wait(2.0)
        timer.stop()

    def test_stop_not_started(self):
        """Test stopping an unstarted timer doesn't raise."""
        IntervalTimer(100, MagicMock()).stop()
