"""Per-segment recorder that encodes captured PCM into a compressed container."""

import io
import logging
import threading

import numpy as np
import soundfile as sf

from ..config import CONTAINER_TYPES

logger = logging.getLogger(__name__)


class SegmentRecorder:
    """Records blocks between ``start()`` and ``stop()``.

    ``stop()`` is synchronous: it returns every byte recorded since
    ``start()``, encoded, so the next recorder can start right after it.
    """

    def __init__(
        self,
        sample_rate: int,
        channels: int = 1,
        encoding_format: str = "OGG",
        encoding_subtype: str = "OPUS",
    ):
        encoding_format = encoding_format.upper()
        if encoding_format not in CONTAINER_TYPES:
            raise ValueError(f"Unsupported container: {encoding_format}")

        self.sample_rate = sample_rate
        self.channels = channels
        self.encoding_format = encoding_format
        self.encoding_subtype = encoding_subtype

        self._blocks: list[np.ndarray] = []
        self._frame_count = 0
        self._recording = False
        self._lock = threading.Lock()

    @property
    def mime_type(self) -> str:
        return CONTAINER_TYPES[self.encoding_format][0]

    @property
    def filename(self) -> str:
        return f"audio.{CONTAINER_TYPES[self.encoding_format][1]}"

    @property
    def state(self) -> str:
        return "recording" if self._recording else "inactive"

    @property
    def frame_count(self) -> int:
        """Frames recorded since start."""
        return self._frame_count

    def start(self) -> None:
        with self._lock:
            if self._recording:
                raise RuntimeError("Recorder already started")
            self._blocks = []
            self._frame_count = 0
            self._recording = True

    def write(self, block: np.ndarray) -> bool:
        """Record a block. Returns False if the recorder is not recording."""
        with self._lock:
            if not self._recording:
                return False
            self._blocks.append(block)
            self._frame_count += len(block)
            return True

    def stop(self) -> bytes:
        """Stop recording and return the encoded audio (empty if nothing was recorded)."""
        with self._lock:
            if not self._recording:
                return b""
            self._recording = False
            blocks, self._blocks = self._blocks, []

        if not blocks:
            return b""

        pcm = np.concatenate(blocks)
        data = self._encode(pcm)
        logger.debug(
            f"Recorder flushed {len(pcm)} frames "
            f"({len(pcm) * 1000 // self.sample_rate}ms) as {len(data)} bytes"
        )
        return data

    def _encode(self, pcm: np.ndarray) -> bytes:
        buffer = io.BytesIO()
        sf.write(
            buffer,
            np.clip(pcm, -1.0, 1.0),
            self.sample_rate,
            format=self.encoding_format,
            subtype=self.encoding_subtype,
        )
        return buffer.getvalue()
