"""Main orchestrator for LiveScribe - live segmented speech transcription."""

import argparse
import logging
import signal
import sys
import threading
import time
from typing import Optional

from .audio.capture import CaptureSource
from .audio.scheduler import build_policy
from .audio.segment import AudioSegment
from .audio.session import CaptureSession
from .config import SEGMENTATION_MODES, SUPPORTED_LANGUAGES, Config, load_config
from .errors import ConfigError, DeviceUnavailable
from .transcription.client import TranscriptionClient
from .transcription.dispatcher import ResultStatus, SegmentResult, TranscriptionDispatcher
from .transcription.log import TranscriptLog

logger = logging.getLogger(__name__)


class LiveScribe:
    """Application orchestrator: capture session, dispatcher and transcript log."""

    def __init__(self, config: Config):
        self.config = config
        self._running = False
        self._status = "Ready"
        self._status_lock = threading.Lock()

        self.transcripts = TranscriptLog()
        self.client = TranscriptionClient(config.transcription)
        self.dispatcher = TranscriptionDispatcher(self.client)
        self.source = CaptureSource(config.audio)
        self.session = CaptureSession(
            config.audio,
            self.source,
            self.dispatcher,
            language=config.transcription.language,
        )

        # Wire up callbacks
        self.dispatcher.on_result(self.transcripts)
        self.dispatcher.on_start(self._on_submit)
        self.dispatcher.on_result(self._on_result)

    def _set_status(self, status: str) -> None:
        with self._status_lock:
            self._status = status
        logger.debug(f"Status: {status}")

    def _on_submit(self, segment: AudioSegment) -> None:
        self._set_status("Transcribing...")

    def _on_result(self, result: SegmentResult) -> None:
        """Update the status line for each segment outcome."""
        recording = self._running
        if result.status is ResultStatus.TRANSCRIBED:
            self._set_status("Recording..." if recording else "Transcribed")
            record = result.record
            print(f"[{record.timestamp:%H:%M:%S}] {record.text}", flush=True)
        elif result.status is ResultStatus.NO_SPEECH:
            self._set_status("Recording..." if recording else "No speech")
        elif result.status is ResultStatus.ERROR:
            self._set_status(f"Error: {result.message}")
        elif result.status is ResultStatus.SKIPPED:
            logger.info("Segment skipped while a transcription was in flight")

    def start(self) -> None:
        """Validate settings and start recording.

        Raises:
            ConfigError: If the service URL or segmentation options are invalid
            DeviceUnavailable: If the microphone cannot be opened
        """
        if self._running:
            logger.warning("LiveScribe already running")
            return

        if not self.config.transcription.service_url:
            self._set_status("Error: configure the transcription service URL first")
            raise ConfigError("transcription.service_url is not set")

        self.config.audio.validate()
        self.config.transcription.validate()
        policy = build_policy(self.config.segmentation)

        try:
            self.session.start(policy)
        except DeviceUnavailable as e:
            self._set_status(f"Error: {e}")
            raise

        self._running = True
        self._set_status("Recording...")
        logger.info("LiveScribe started")

    def stop(self, timeout: float = 10.0) -> None:
        """Stop recording and wait for the last transcription."""
        if not self._running:
            return

        logger.info("Stopping LiveScribe...")
        self._running = False
        self.session.stop()

        if self.dispatcher.in_flight:
            self._set_status("Transcribing...")
        if not self.dispatcher.wait(timeout):
            logger.warning("Last transcription still pending at shutdown")

        self._set_status("Stopped")
        logger.info("LiveScribe stopped")

    def close(self) -> None:
        self.stop()
        self.client.close()

    def clear_transcripts(self) -> None:
        """Empty the transcript log."""
        self.transcripts.clear()
        self._set_status("Cleared")

    @property
    def status(self) -> str:
        with self._status_lock:
            return self._status

    def get_status(self) -> dict:
        """Get current status of all components."""
        return {
            "running": self._running,
            "status": self.status,
            "mode": self.config.segmentation.mode,
            "language": self.session.language,
            "volume": round(self.session.level, 4),
            "segments_dispatched": self.session.segments_dispatched,
            "segments_skipped": self.dispatcher.skipped,
            "transcribing": self.dispatcher.in_flight,
            "transcripts": len(self.transcripts),
        }


def _apply_overrides(config: Config, args: argparse.Namespace) -> None:
    if args.mode:
        config.segmentation.mode = args.mode
    if args.language:
        config.transcription.language = args.language
    if args.url:
        config.transcription.service_url = args.url


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="LiveScribe - live speech transcription")
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (default: $LIVESCRIBE_CONFIG or config/settings.yaml)",
    )
    parser.add_argument(
        "-m", "--mode",
        choices=SEGMENTATION_MODES,
        help="Segmentation mode: smart (speech pauses) or time (fixed interval)",
    )
    parser.add_argument(
        "-l", "--language",
        choices=SUPPORTED_LANGUAGES,
        help="Recognition language",
    )
    parser.add_argument(
        "-u", "--url",
        help="Transcription service URL",
    )
    parser.add_argument(
        "--list-audio",
        action="store_true",
        help="List available audio devices",
    )
    parser.add_argument(
        "--write-config",
        metavar="PATH",
        help="Write the effective configuration to PATH and exit",
    )
    args = parser.parse_args(argv)

    if args.list_audio:
        print("Available audio devices:")
        for dev in CaptureSource.list_devices():
            print(f"  [{dev['id']}] {dev['name']} ({dev['channels']}ch)")
        return 0

    config = load_config(args.config)
    _apply_overrides(config, args)

    if args.write_config:
        config.to_yaml(args.write_config)
        print(f"Configuration written to {args.write_config}")
        return 0

    config.setup_logging()

    logger.info("=" * 50)
    logger.info("LiveScribe - live speech transcription")
    logger.info("=" * 50)

    app = LiveScribe(config)
    shutdown = threading.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}")
        shutdown.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        app.start()
    except (ConfigError, DeviceUnavailable) as e:
        logger.error(f"Cannot start: {e}")
        app.client.close()
        return 1

    try:
        while not shutdown.is_set():
            time.sleep(0.5)
    finally:
        app.close()

    text = app.transcripts.full_text
    if text:
        print("\n--- Transcript ---")
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
