"""Segment boundary decisions for fixed-interval and speech-adaptive policies."""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from ..config import SegmentationConfig

logger = logging.getLogger(__name__)


class BoundaryReason(Enum):
    """Why a segment ended."""
    MAX_DURATION_EXCEEDED = "max_duration_exceeded"
    SILENCE_DETECTED = "silence_detected"
    FIXED_INTERVAL_ELAPSED = "fixed_interval_elapsed"


@dataclass(frozen=True)
class FixedPolicy:
    """Cut a segment every ``interval_ms`` regardless of volume."""
    interval_ms: int

    def __post_init__(self):
        if self.interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

    @property
    def mode(self) -> str:
        return "time"


@dataclass(frozen=True)
class AdaptivePolicy:
    """Cut a segment at speech pauses, with a hard cap on segment length."""
    silence_threshold: float
    silence_timeout_ms: int
    max_segment_ms: int

    def __post_init__(self):
        if not 0.0 <= self.silence_threshold < 1.0:
            raise ValueError("silence_threshold must be in [0, 1)")
        if self.silence_timeout_ms <= 0 or self.max_segment_ms <= 0:
            raise ValueError("timeouts must be positive")

    @property
    def mode(self) -> str:
        return "smart"


SegmentationPolicy = Union[FixedPolicy, AdaptivePolicy]


def build_policy(config: SegmentationConfig) -> SegmentationPolicy:
    """Validate segmentation options and turn them into a policy."""
    config.validate()
    if config.mode == "time":
        return FixedPolicy(interval_ms=config.chunk_duration_ms)
    return AdaptivePolicy(
        silence_threshold=config.silence_threshold,
        silence_timeout_ms=config.silence_timeout_ms,
        max_segment_ms=config.max_segment_ms,
    )


class SegmentScheduler:
    """Decides, per volume sample, whether the current segment ends.

    Times are milliseconds on a monotonic clock supplied by the caller.
    A segment only counts as having content for silence purposes once
    speech was heard in it and audio was buffered. Any segment holding
    audio is cut once it runs past ``max_segment_ms``, speech or not.
    """

    def __init__(self, policy: SegmentationPolicy):
        self.policy = policy
        self._segment_start = 0.0
        self._last_speech = 0.0
        self._heard_speech = False
        self._on_boundary: list[Callable[[BoundaryReason], None]] = []

    def on_boundary(self, callback: Callable[[BoundaryReason], None]) -> None:
        """Register callback for segment boundaries."""
        self._on_boundary.append(callback)

    def begin(self, now_ms: float) -> None:
        """Start timing a new segment."""
        self._segment_start = now_ms
        self._last_speech = now_ms
        self._heard_speech = False

    @property
    def segment_start(self) -> float:
        return self._segment_start

    @property
    def last_speech(self) -> float:
        return self._last_speech

    def evaluate(self, volume: float, now_ms: float, has_audio: bool) -> Optional[BoundaryReason]:
        """Apply the adaptive rules to one sample.

        Args:
            volume: Normalized volume in [0, 1]
            now_ms: Sample time
            has_audio: Whether the current segment has buffered audio

        Returns:
            The boundary reason if this sample ended the segment
        """
        policy = self.policy
        if not isinstance(policy, AdaptivePolicy):
            return None

        if volume > policy.silence_threshold:
            self._last_speech = now_ms
            self._heard_speech = True
            if now_ms - self._segment_start > policy.max_segment_ms:
                self._segment_start = now_ms
                return self._emit(BoundaryReason.MAX_DURATION_EXCEEDED)
            return None

        silence_ms = now_ms - self._last_speech
        if silence_ms > policy.silence_timeout_ms and has_audio and self._heard_speech:
            logger.debug(f"Silence for {silence_ms:.0f}ms")
            self.begin(now_ms)
            return self._emit(BoundaryReason.SILENCE_DETECTED)

        # A quiet segment still may not outgrow the cap
        if has_audio and now_ms - self._segment_start > policy.max_segment_ms:
            self.begin(now_ms)
            return self._emit(BoundaryReason.MAX_DURATION_EXCEEDED)
        return None

    def interval_elapsed(self, now_ms: float) -> BoundaryReason:
        """Fixed-interval tick; always ends the segment."""
        self.begin(now_ms)
        return self._emit(BoundaryReason.FIXED_INTERVAL_ELAPSED)

    def _emit(self, reason: BoundaryReason) -> BoundaryReason:
        logger.info(f"Segment boundary: {reason.value}")
        for callback in self._on_boundary:
            try:
                callback(reason)
            except Exception as e:
                logger.error(f"Boundary callback error: {e}", exc_info=True)
        return reason


class IntervalTimer:
    """Calls ``callback`` every ``interval_ms`` on a background thread.

    Deadlines are computed from the start time so ticks do not drift.
    """

    def __init__(self, interval_ms: int, callback: Callable[[], None],
                 clock: Callable[[], float] = time.monotonic):
        self.interval = interval_ms / 1000.0
        self.callback = callback
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _run(self) -> None:
        deadline = self._clock() + self.interval
        while not self._stop_event.wait(max(0.0, deadline - self._clock())):
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Interval callback error: {e}", exc_info=True)
            deadline += self.interval

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None

    def is_running(self) -> bool:
        return self._thread is not None
