"""Ordered, in-memory log of transcripts for the current run."""

import logging
import threading
from typing import Optional

from .dispatcher import SegmentResult, TranscriptRecord

logger = logging.getLogger(__name__)


class TranscriptLog:
    """Thread-safe append-only list of transcript records.

    Can be registered directly as a dispatcher result callback.
    """

    def __init__(self, max_records: Optional[int] = None):
        self._lock = threading.Lock()
        self._records: list[TranscriptRecord] = []
        self.max_records = max_records

    def __call__(self, result: SegmentResult) -> None:
        if result.record is not None:
            self.append(result.record)

    def append(self, record: TranscriptRecord) -> None:
        """Add a record at the end of the log."""
        with self._lock:
            self._records.append(record)
            if self.max_records is not None and len(self._records) > self.max_records:
                del self._records[: len(self._records) - self.max_records]
            logger.debug(f"Added transcript: {record.text[:30]}...")

    def records(self) -> list[TranscriptRecord]:
        """Snapshot of the log in arrival order."""
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def full_text(self) -> str:
        """All transcript texts joined with newlines."""
        with self._lock:
            return "\n".join(record.text for record in self._records)
