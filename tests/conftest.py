"""Pytest configuration and shared fixtures."""

import tempfile
import threading
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest


# ==================== Path Fixtures ====================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir):
    """Create a temporary config file."""
    config_path = temp_dir / "settings.yaml"
    config_content = """
audio:
  device: "default"
  sample_rate: 16000
  channels: 1
  block_duration_ms: 50
  monitor_hz: 60
  encoding_format: "WAV"
  encoding_subtype: "PCM_16"

segmentation:
  mode: "smart"
  silence_threshold: 0.02
  silence_timeout_ms: 1000
  max_segment_ms: 12000

transcription:
  service_url: "https://stt.example.com/transcribe"
  language: "en"
  timeout: 5.0

logging:
  level: "DEBUG"
  file: null
"""
    config_path.write_text(config_content)
    return config_path


# ==================== Audio Fixtures ====================

@pytest.fixture
def sample_audio_block():
    """Generate 50ms of speech-like noise at 16kHz."""
    return (np.random.randn(800) * 0.1).astype(np.float32)


@pytest.fixture
def silence_audio_block():
    """Generate 50ms of silence at 16kHz."""
    return np.zeros(800, dtype=np.float32)


@pytest.fixture
def test_audio_config():
    """Audio config with a container that needs no optional codecs."""
    from livescribe.config import AudioConfig
    return AudioConfig(
        device="default",
        sample_rate=16000,
        channels=1,
        block_duration_ms=50,
        monitor_hz=60,
        encoding_format="WAV",
        encoding_subtype="PCM_16",
    )


@pytest.fixture
def adaptive_policy():
    """Default smart-mode policy."""
    from livescribe.audio.scheduler import AdaptivePolicy
    return AdaptivePolicy(silence_threshold=0.01, silence_timeout_ms=800, max_segment_ms=10000)


@pytest.fixture
def fixed_policy():
    """Default time-mode policy."""
    from livescribe.audio.scheduler import FixedPolicy
    return FixedPolicy(interval_ms=3000)


@pytest.fixture
def sample_segment():
    """A finalized segment with a little encoded audio."""
    from livescribe.audio.segment import AudioSegment
    now = datetime.now()
    return AudioSegment(
        chunks=(b"RIFF", b"audio-bytes"),
        started_at=now - timedelta(seconds=2),
        ended_at=now,
        mode="smart",
        mime_type="audio/wav",
        filename="audio.wav",
    )


# ==================== Mock Fixtures ====================

class FakeCaptureSource:
    """In-memory stand-in for CaptureSource: blocks are pushed by the test."""

    def __init__(self, sample_rate=16000, fail=None):
        self.sample_rate = sample_rate
        self.fail = fail
        self.acquired = False
        self.acquire_count = 0
        self.release_count = 0
        self._callbacks = []

    def acquire(self):
        if self.fail is not None:
            raise self.fail
        self.acquired = True
        self.acquire_count += 1

    def release(self):
        if self.acquired:
            self.release_count += 1
        self.acquired = False

    def add_callback(self, callback):
        self._callbacks.append(callback)

    def remove_callback(self, callback):
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def push(self, block):
        for callback in list(self._callbacks):
            callback(block)

    def byte_frequency_data(self):
        return None

    def is_running(self):
        return self.acquired


@pytest.fixture
def fake_source():
    """Create a fake capture source."""
    return FakeCaptureSource()


@pytest.fixture
def mock_dispatcher():
    """Create a mock dispatcher that records submitted segments."""
    dispatcher = MagicMock()
    dispatcher.submitted_segments = []
    dispatcher.submit.side_effect = lambda segment, language: dispatcher.submitted_segments.append(segment)
    return dispatcher


class BlockingTranscriber:
    """Transcriber whose requests wait until released by the test."""

    def __init__(self, text="hello"):
        self.text = text
        self.release = threading.Event()
        self.started = threading.Event()
        self.calls = []

    def transcribe(self, audio, language, *, filename, mime_type):
        self.calls.append((audio, language, filename, mime_type))
        self.started.set()
        self.release.wait(5.0)
        return self.text


@pytest.fixture
def blocking_transcriber():
    """Create a transcriber that blocks until ``release`` is set."""
    transcriber = BlockingTranscriber()
    yield transcriber
    transcriber.release.set()


@pytest.fixture
def mock_transcriber():
    """Create a mock transcriber returning fixed text."""
    transcriber = MagicMock()
    transcriber.transcribe.return_value = "Test transcription"
    return transcriber


@pytest.fixture
def failing_source():
    """Create a fake capture source whose device cannot be opened."""
    from livescribe.errors import DeviceUnavailable
    return FakeCaptureSource(fail=DeviceUnavailable("Permission denied"))
