"""Single-flight dispatch of finished segments to the transcription service."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Protocol

from ..audio.segment import AudioSegment
from ..config import SUPPORTED_LANGUAGES
from ..errors import TranscriptionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscriptRecord:
    """A completed transcription."""
    text: str
    timestamp: datetime
    mode: str


class ResultStatus(Enum):
    TRANSCRIBED = "transcribed"
    NO_SPEECH = "no_speech"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class SegmentResult:
    """Outcome of one submitted segment."""
    status: ResultStatus
    segment_started_at: datetime
    segment_ended_at: datetime
    record: Optional[TranscriptRecord] = None
    message: Optional[str] = None


class Transcriber(Protocol):
    def transcribe(self, audio: bytes, language: str, *, filename: str, mime_type: str) -> str: ...


class TranscriptionDispatcher:
    """Sends segments to the service, at most one request at a time.

    A segment submitted while a request is in flight is dropped and
    reported as skipped. Results go to the registered callbacks.
    """

    def __init__(self, client: Transcriber):
        self.client = client
        self._in_flight = threading.Lock()
        self._worker: Optional[threading.Thread] = None
        self._on_result: list[Callable[[SegmentResult], None]] = []
        self._on_start: list[Callable[[AudioSegment], None]] = []

        self.submitted = 0
        self.skipped = 0

    def on_result(self, callback: Callable[[SegmentResult], None]) -> None:
        """Register callback for segment results."""
        self._on_result.append(callback)

    def on_start(self, callback: Callable[[AudioSegment], None]) -> None:
        """Register callback for segments accepted for transcription."""
        self._on_start.append(callback)

    def remove_callback(self, callback: Callable[..., None]) -> None:
        if callback in self._on_result:
            self._on_result.remove(callback)
        if callback in self._on_start:
            self._on_start.remove(callback)

    def clear_callbacks(self) -> None:
        """Detach every callback; later results are discarded."""
        self._on_result.clear()
        self._on_start.clear()

    def submit(self, segment: AudioSegment, language: str) -> None:
        """Start transcribing a segment in the background. Never blocks on the network."""
        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {language}")

        if not self._in_flight.acquire(blocking=False):
            self.skipped += 1
            logger.warning(
                f"Transcription in flight, skipping {segment.duration_ms}ms segment"
            )
            self._emit(SegmentResult(
                status=ResultStatus.SKIPPED,
                segment_started_at=segment.started_at,
                segment_ended_at=segment.ended_at,
            ))
            return

        self.submitted += 1
        for callback in list(self._on_start):
            try:
                callback(segment)
            except Exception as e:
                logger.error(f"Start callback error: {e}")

        try:
            worker = threading.Thread(
                target=self._run, args=(segment, language), daemon=True
            )
            self._worker = worker
            worker.start()
        except RuntimeError:
            self._in_flight.release()
            raise

    def _run(self, segment: AudioSegment, language: str) -> None:
        # Results go out before the next request may start
        try:
            self._emit(self._transcribe(segment, language))
        finally:
            self._in_flight.release()

    def _transcribe(self, segment: AudioSegment, language: str) -> SegmentResult:
        try:
            text = self.client.transcribe(
                segment.data,
                language,
                filename=segment.filename,
                mime_type=segment.mime_type,
            )
        except TranscriptionError as e:
            logger.error(f"Transcription error: {e}")
            return self._result(segment, ResultStatus.ERROR, message=str(e))
        except Exception as e:
            logger.error(f"Unexpected transcription failure: {e}", exc_info=True)
            return self._result(segment, ResultStatus.ERROR, message=str(e) or e.__class__.__name__)

        text = text.strip()
        if not text:
            logger.info("No speech in segment")
            return self._result(segment, ResultStatus.NO_SPEECH)

        record = TranscriptRecord(text=text, timestamp=datetime.now(), mode=segment.mode)
        logger.info(f"Transcribed: '{text[:50]}'")
        return self._result(segment, ResultStatus.TRANSCRIBED, record=record)

    @staticmethod
    def _result(segment: AudioSegment, status: ResultStatus, **kwargs) -> SegmentResult:
        return SegmentResult(
            status=status,
            segment_started_at=segment.started_at,
            segment_ended_at=segment.ended_at,
            **kwargs,
        )

    def _emit(self, result: SegmentResult) -> None:
        for callback in list(self._on_result):
            try:
                callback(result)
            except Exception as e:
                logger.error(f"Result callback error: {e}")

    @property
    def in_flight(self) -> bool:
        """Whether a request is currently running."""
        return self._in_flight.locked()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for the current request and its result callbacks. Returns True when idle."""
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)
            return not worker.is_alive()
        return True
