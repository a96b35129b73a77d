"""Capture session: owns the live recorder and cuts it into segments."""

import logging
import threading
import time
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Protocol

import numpy as np

from ..config import SUPPORTED_LANGUAGES, AudioConfig
from ..errors import SessionError
from .recorder import SegmentRecorder
from .scheduler import (
    AdaptivePolicy,
    BoundaryReason,
    FixedPolicy,
    IntervalTimer,
    SegmentationPolicy,
    SegmentScheduler,
)
from .segment import AudioSegment, SegmentBuffer
from .volume import VolumeMonitor

if TYPE_CHECKING:
    from .capture import CaptureSource

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    ACTIVE = "active"


class SegmentSink(Protocol):
    def submit(self, segment: AudioSegment, language: str) -> None: ...


class CaptureSession:
    """Records continuously and hands each finished segment to the dispatcher.

    At a boundary the current recorder is stopped, its segment submitted,
    and a new recorder started before anything waits on the submission.
    Blocks arriving from the capture source always go to the recorder that
    is active at delivery time, so no audio falls between segments.
    """

    def __init__(
        self,
        config: AudioConfig,
        source: "CaptureSource",
        dispatcher: SegmentSink,
        language: str = "zh",
        clock: Callable[[], float] = time.monotonic,
    ):
        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {language}")

        self.config = config
        self.source = source
        self.dispatcher = dispatcher
        self.language = language
        self._clock = clock

        self._state = SessionState.IDLE
        self._stopping = False
        self._lock = threading.RLock()

        self.policy: Optional[SegmentationPolicy] = None
        self.scheduler: Optional[SegmentScheduler] = None
        self._monitor: Optional[VolumeMonitor] = None
        self._timer: Optional[IntervalTimer] = None
        self._recorder: Optional[SegmentRecorder] = None
        self._buffer: Optional[SegmentBuffer] = None
        self._segments_dispatched = 0

        self._on_level: list[Callable[[float], None]] = []

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    # ==================== Lifecycle ====================

    def start(self, policy: SegmentationPolicy) -> None:
        """Acquire the input and begin the first segment.

        Raises:
            ConfigError: If the audio options are invalid
            DeviceUnavailable: If the capture device cannot be opened
            SessionError: If a session is already active
        """
        with self._lock:
            if self._state is SessionState.ACTIVE:
                raise SessionError("Capture session already active")

            self.config.validate()
            logger.info(f"Starting capture session ({policy.mode} mode)")

            # Session stays IDLE if this raises
            self.source.acquire()

            try:
                self.policy = policy
                self.scheduler = SegmentScheduler(policy)
                self.scheduler.on_boundary(self.on_boundary)
                self._segments_dispatched = 0
                self._stopping = False

                self._open_segment()
                self.scheduler.begin(self._now_ms())
                self.source.add_callback(self._on_audio)

                if isinstance(policy, AdaptivePolicy):
                    self._monitor = VolumeMonitor(
                        self.source, sample_hz=self.config.monitor_hz, clock=self._clock
                    )
                    self._monitor.on_sample(self._on_sample)
                    self._monitor.start()
                elif isinstance(policy, FixedPolicy):
                    self._timer = IntervalTimer(policy.interval_ms, self._on_interval, clock=self._clock)
                    self._timer.start()
            except Exception:
                logger.error("Capture session failed to start, releasing input")
                self._abort_start()
                raise

            self._state = SessionState.ACTIVE

        logger.info("Capture session active")

    def stop(self) -> None:
        """Stop capturing, dispatch the remaining audio and release the input.

        Calling stop on an idle session does nothing.
        """
        with self._lock:
            if self._state is SessionState.IDLE or self._stopping:
                return
            self._stopping = True
            monitor, self._monitor = self._monitor, None
            timer, self._timer = self._timer, None

        logger.info("Stopping capture session")

        # Monitor and timer threads take the session lock, so join them unlocked
        if monitor is not None:
            monitor.stop()
        if timer is not None:
            timer.stop()

        # Releasing drains queued blocks into the still-active recorder
        self.source.release()
        self.source.remove_callback(self._on_audio)

        with self._lock:
            segment = self._close_segment()
            if segment is not None:
                self._dispatch(segment)
            self._state = SessionState.IDLE
            self._stopping = False
            self.scheduler = None

        logger.info(f"Capture session stopped ({self._segments_dispatched} segments dispatched)")

    def _abort_start(self) -> None:
        """Undo a partial start so the input is not left open."""
        monitor, self._monitor = self._monitor, None
        timer, self._timer = self._timer, None
        if monitor is not None:
            monitor.stop()
        if timer is not None:
            timer.stop()

        self.source.remove_callback(self._on_audio)
        self.source.release()

        self._recorder = None
        self._buffer = None
        self.scheduler = None
        self.policy = None

    # ==================== Boundaries ====================

    def on_boundary(self, reason: BoundaryReason) -> None:
        """End the current segment and immediately start the next one."""
        with self._lock:
            if self._state is not SessionState.ACTIVE or self._stopping:
                return

            segment = self._close_segment()
            if segment is not None:
                self._dispatch(segment)
            else:
                logger.debug(f"Boundary ({reason.value}) on empty segment, nothing to dispatch")

            self._open_segment()
            if self.scheduler is not None:
                self.scheduler.begin(self._now_ms())

    def _on_sample(self, volume: float, now_ms: float) -> None:
        for callback in self._on_level:
            try:
                callback(volume)
            except Exception as e:
                logger.error(f"Level callback error: {e}")

        with self._lock:
            if self._state is not SessionState.ACTIVE or self._stopping or self.scheduler is None:
                return
            self.scheduler.evaluate(volume, now_ms, self.has_audio())

    def _on_interval(self) -> None:
        with self._lock:
            if self._state is not SessionState.ACTIVE or self._stopping or self.scheduler is None:
                return
            self.scheduler.interval_elapsed(self._now_ms())

    def _on_audio(self, block: np.ndarray) -> None:
        with self._lock:
            if self._recorder is not None:
                self._recorder.write(block)

    # ==================== Segments ====================

    def _open_segment(self) -> None:
        recorder = SegmentRecorder(
            sample_rate=self.source.sample_rate,
            channels=1,
            encoding_format=self.config.encoding_format,
            encoding_subtype=self.config.encoding_subtype,
        )
        self._buffer = SegmentBuffer(
            mode=self.policy.mode,
            mime_type=recorder.mime_type,
            filename=recorder.filename,
            started_at=datetime.now(),
        )
        recorder.start()
        self._recorder = recorder

    def _close_segment(self) -> Optional[AudioSegment]:
        """Stop the recorder and finalize its buffer. Returns None if no audio was recorded."""
        recorder, self._recorder = self._recorder, None
        buffer, self._buffer = self._buffer, None
        if recorder is None or buffer is None:
            return None

        try:
            buffer.append(recorder.stop())
        except (RuntimeError, ValueError) as e:
            logger.error(f"Failed to encode segment, dropping it: {e}")
        segment = buffer.finalize(datetime.now())
        if segment.is_empty:
            return None
        return segment

    def _dispatch(self, segment: AudioSegment) -> None:
        self._segments_dispatched += 1
        logger.info(
            f"Dispatching segment {self._segments_dispatched}: "
            f"{segment.duration_ms}ms, {segment.size} bytes"
        )
        try:
            self.dispatcher.submit(segment, self.language)
        except Exception as e:
            logger.error(f"Segment dispatch failed: {e}", exc_info=True)

    # ==================== Status ====================

    def on_level(self, callback: Callable[[float], None]) -> None:
        """Register callback for each sampled volume level."""
        self._on_level.append(callback)

    def has_audio(self) -> bool:
        """Whether the current segment has recorded anything yet."""
        recorder = self._recorder
        return recorder is not None and recorder.frame_count > 0

    @property
    def state(self) -> SessionState:
        return self._state

    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def level(self) -> float:
        """Latest volume level (0 outside adaptive sessions)."""
        monitor = self._monitor
        return monitor.level if monitor is not None else 0.0

    @property
    def segments_dispatched(self) -> int:
        return self._segments_dispatched
