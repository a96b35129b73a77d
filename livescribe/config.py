"""Configuration management for LiveScribe."""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("zh", "en", "ja", "ko")
SEGMENTATION_MODES = ("smart", "time")

# Container -> (mime type, file extension)
CONTAINER_TYPES = {
    "OGG": ("audio/ogg", "ogg"),
    "FLAC": ("audio/flac", "flac"),
    "WAV": ("audio/wav", "wav"),
}


@dataclass
class AudioConfig:
    """Audio capture and analysis configuration."""
    device: str = "default"
    sample_rate: int = 16000
    channels: int = 1
    block_duration_ms: int = 50
    monitor_hz: int = 60
    fft_size: int = 2048
    smoothing: float = 0.8
    min_decibels: float = -100.0
    max_decibels: float = -30.0
    encoding_format: str = "OGG"
    encoding_subtype: str = "OPUS"

    def validate(self) -> None:
        if self.encoding_format.upper() not in CONTAINER_TYPES:
            raise ConfigError(
                f"Unsupported container {self.encoding_format!r}, expected one of {', '.join(CONTAINER_TYPES)}"
            )
        if self.sample_rate <= 0 or self.block_duration_ms <= 0 or self.monitor_hz <= 0:
            raise ConfigError("sample_rate, block_duration_ms and monitor_hz must be positive")


@dataclass
class SegmentationConfig:
    """Segmentation policy options, selected at session start."""
    mode: str = "smart"
    chunk_duration_ms: int = 3000  # time mode
    silence_threshold: float = 0.01
    silence_timeout_ms: int = 800
    max_segment_ms: int = 10000

    def validate(self) -> None:
        """Check option ranges. Raises ConfigError on the first bad value."""
        if self.mode not in SEGMENTATION_MODES:
            raise ConfigError(f"Unknown segmentation mode: {self.mode!r}")
        if self.mode == "time":
            _check_range("chunk_duration_ms", self.chunk_duration_ms, 2000, 8000)
            return
        _check_range("silence_threshold", self.silence_threshold, 0.005, 0.05)
        _check_range("silence_timeout_ms", self.silence_timeout_ms, 500, 2000)
        _check_range("max_segment_ms", self.max_segment_ms, 5000, 15000)


@dataclass
class TranscriptionConfig:
    """Transcription service configuration."""
    service_url: str = ""
    language: str = "zh"
    timeout: float = 30.0
    api_key: Optional[str] = None

    def validate(self) -> None:
        if self.language not in SUPPORTED_LANGUAGES:
            raise ConfigError(
                f"Unsupported language {self.language!r}, expected one of {', '.join(SUPPORTED_LANGUAGES)}"
            )
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = "./logs/livescribe.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class Config:
    """Main configuration container."""
    audio: AudioConfig = field(default_factory=AudioConfig)
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        try:
            return cls(
                audio=AudioConfig(**data.get("audio", {})),
                segmentation=SegmentationConfig(**data.get("segmentation", {})),
                transcription=TranscriptionConfig(**data.get("transcription", {})),
                logging=LoggingConfig(**data.get("logging", {})),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "audio": asdict(self.audio),
            "segmentation": asdict(self.segmentation),
            "transcription": asdict(self.transcription),
            "logging": asdict(self.logging),
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    def validate(self) -> None:
        """Validate every section that has value constraints."""
        self.audio.validate()
        self.segmentation.validate()
        self.transcription.validate()

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        log_level = getattr(logging, self.logging.level.upper(), logging.INFO)

        handlers = [logging.StreamHandler()]

        if self.logging.file:
            log_path = Path(self.logging.file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path))

        logging.basicConfig(
            level=log_level,
            format=self.logging.format,
            handlers=handlers,
            force=True,
        )


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ConfigError(f"{name}={value} out of range [{low}, {high}]")


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from file or environment."""
    if path is None:
        path = os.environ.get("LIVESCRIBE_CONFIG", "config/settings.yaml")
    return Config.from_yaml(path)
