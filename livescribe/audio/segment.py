"""Segment buffers and the finalized segments handed to transcription."""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class AudioSegment:
    """A finalized span of encoded audio. Never mutated after creation."""
    chunks: tuple[bytes, ...]
    started_at: datetime
    ended_at: datetime
    mode: str
    mime_type: str = "audio/ogg"
    filename: str = "audio.ogg"

    @property
    def data(self) -> bytes:
        """All chunks joined in order."""
        return b"".join(self.chunks)

    @property
    def size(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)

    @property
    def is_empty(self) -> bool:
        return self.size == 0

    @property
    def duration_ms(self) -> int:
        return int((self.ended_at - self.started_at).total_seconds() * 1000)


class SegmentClosedError(RuntimeError):
    """Raised when writing to a buffer that was already finalized."""


class SegmentBuffer:
    """Ordered encoded chunks for the segment currently being captured."""

    def __init__(self, mode: str, mime_type: str = "audio/ogg", filename: str = "audio.ogg",
                 started_at: Optional[datetime] = None):
        self.mode = mode
        self.mime_type = mime_type
        self.filename = filename
        self.started_at = started_at or datetime.now()
        self._chunks: list[bytes] = []
        self._closed = False
        self._lock = threading.Lock()

    def append(self, chunk: bytes) -> None:
        """Add an encoded chunk. Empty chunks are ignored."""
        with self._lock:
            if self._closed:
                raise SegmentClosedError("Segment buffer already finalized")
            if chunk:
                self._chunks.append(chunk)

    def __len__(self) -> int:
        with self._lock:
            return len(self._chunks)

    @property
    def closed(self) -> bool:
        return self._closed

    def finalize(self, ended_at: Optional[datetime] = None) -> AudioSegment:
        """Seal the buffer and return its contents as an immutable segment.

        The buffer is cleared and refuses further writes.
        """
        with self._lock:
            if self._closed:
                raise SegmentClosedError("Segment buffer already finalized")
            self._closed = True
            chunks = tuple(self._chunks)
            self._chunks.clear()

        return AudioSegment(
            chunks=chunks,
            started_at=self.started_at,
            ended_at=ended_at or datetime.now(),
            mode=self.mode,
            mime_type=self.mime_type,
            filename=self.filename,
        )
