"""Audio pipeline components for continuous capture and segmentation.

The sounddevice-backed input lives in ``livescribe.audio.capture``.
"""

from .recorder import SegmentRecorder
from .scheduler import (
    AdaptivePolicy,
    BoundaryReason,
    FixedPolicy,
    IntervalTimer,
    SegmentScheduler,
    build_policy,
)
from .segment import AudioSegment, SegmentBuffer
from .session import CaptureSession, SessionState
from .volume import VolumeMonitor

__all__ = [
    "AdaptivePolicy",
    "AudioSegment",
    "BoundaryReason",
    "CaptureSession",
    "FixedPolicy",
    "IntervalTimer",
    "SegmentBuffer",
    "SegmentRecorder",
    "SegmentScheduler",
    "SessionState",
    "VolumeMonitor",
    "build_policy",
]
