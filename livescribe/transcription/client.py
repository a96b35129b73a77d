"""HTTP client for the speech-to-text service."""

import logging
from typing import Optional

import httpx

from ..config import SUPPORTED_LANGUAGES, TranscriptionConfig
from ..errors import NetworkError, ServiceError

logger = logging.getLogger(__name__)


class TranscriptionClient:
    """Posts encoded audio as multipart form data and returns the recognized text."""

    def __init__(self, config: TranscriptionConfig, *, client: Optional[httpx.Client] = None):
        self.config = config
        self.url = config.service_url
        self._client = client or httpx.Client(timeout=config.timeout)

    def _headers(self) -> dict:
        if self.config.api_key:
            return {"X-API-Key": self.config.api_key}
        return {}

    def transcribe(
        self,
        audio: bytes,
        language: str,
        *,
        filename: str = "audio.ogg",
        mime_type: str = "audio/ogg",
    ) -> str:
        """Send one segment and return the ``text`` field of the response.

        Raises:
            NetworkError: If no response was received
            ServiceError: On a non-2xx status or a malformed body
        """
        if not self.url:
            raise ServiceError("Transcription service URL is not configured")
        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {language}")

        files = {"audio": (filename, audio, mime_type)}
        data = {"language": language}

        try:
            resp = self._client.post(self.url, headers=self._headers(), files=files, data=data)
        except httpx.HTTPError as e:
            raise NetworkError(str(e) or e.__class__.__name__) from e

        if not resp.is_success:
            message = resp.text.strip() or f"Transcription failed (HTTP {resp.status_code})"
            raise ServiceError(message, status_code=resp.status_code)

        try:
            payload = resp.json()
        except ValueError as e:
            raise ServiceError(f"Invalid response: {e}", status_code=resp.status_code) from e

        if not isinstance(payload, dict):
            raise ServiceError("Invalid response: expected a JSON object", status_code=resp.status_code)

        text = payload.get("text") or ""
        if not isinstance(text, str):
            raise ServiceError("Invalid response: 'text' is not a string", status_code=resp.status_code)
        return text

    def close(self) -> None:
        self._client.close()
