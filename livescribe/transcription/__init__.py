"""Transcription client, dispatcher and result log."""

from .client import TranscriptionClient
from .dispatcher import ResultStatus, SegmentResult, TranscriptionDispatcher, TranscriptRecord
from .log import TranscriptLog

__all__ = [
    "ResultStatus",
    "SegmentResult",
    "TranscriptLog",
    "TranscriptRecord",
    "TranscriptionClient",
    "TranscriptionDispatcher",
]
