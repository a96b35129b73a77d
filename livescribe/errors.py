"""Exception hierarchy for LiveScribe."""

from typing import Optional


class LiveScribeError(Exception):
    """Base class for all LiveScribe errors."""


class ConfigError(LiveScribeError, ValueError):
    """Invalid configuration value."""


class DeviceUnavailable(LiveScribeError):
    """The audio capture device could not be acquired."""


class SessionError(LiveScribeError):
    """Capture session used out of order (e.g. started twice)."""


class TranscriptionError(LiveScribeError):
    """A single transcription request failed."""


class NetworkError(TranscriptionError):
    """The request never produced an HTTP response."""


class ServiceError(TranscriptionError):
    """The service answered with a non-2xx status or an unreadable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
