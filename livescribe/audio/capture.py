"""Live microphone input shared by the recorders and the volume analyser."""

import logging
import queue
import threading
from typing import Callable, Optional

import numpy as np
import sounddevice as sd

from ..config import AudioConfig
from ..errors import DeviceUnavailable

logger = logging.getLogger(__name__)


class FrequencyAnalyser:
    """Byte frequency histogram over the most recent samples.

    Mirrors a Web Audio ``AnalyserNode``: Blackman window, FFT magnitude
    normalized by the FFT size, exponential smoothing across calls, and a
    decibel range mapped linearly onto 0-255.
    """

    def __init__(
        self,
        fft_size: int = 2048,
        smoothing: float = 0.8,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two >= 32, got {fft_size}")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be below max_decibels")

        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self._samples = np.zeros(fft_size, dtype=np.float32)
        self._window = np.blackman(fft_size).astype(np.float32)
        self._previous = np.zeros(self.frequency_bin_count, dtype=np.float64)
        self._lock = threading.Lock()

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def push(self, block: np.ndarray) -> None:
        """Append samples, keeping only the last ``fft_size``."""
        block = np.asarray(block, dtype=np.float32).ravel()
        if block.size == 0:
            return
        with self._lock:
            if block.size >= self.fft_size:
                self._samples[:] = block[-self.fft_size:]
            else:
                self._samples = np.roll(self._samples, -block.size)
                self._samples[-block.size:] = block

    def byte_frequency_data(self) -> np.ndarray:
        """Return the current histogram as ``uint8`` values, one per bin."""
        with self._lock:
            windowed = self._samples * self._window
            spectrum = np.abs(np.fft.rfft(windowed))[: self.frequency_bin_count] / self.fft_size
            smoothed = self.smoothing * self._previous + (1.0 - self.smoothing) * spectrum
            self._previous = smoothed

        decibels = 20.0 * np.log10(np.maximum(smoothed, 1e-12))
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.floor((decibels - self.min_decibels) * scale)
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def reset(self) -> None:
        with self._lock:
            self._samples.fill(0.0)
            self._previous.fill(0.0)


class CaptureSource:
    """Continuous audio input from a microphone.

    The stream is acquired once per session. Every block is fed to the
    analyser and then to the registered callbacks, in arrival order.
    """

    def __init__(self, config: AudioConfig):
        self.config = config
        self.sample_rate = config.sample_rate
        self.channels = config.channels
        self.block_samples = int(config.sample_rate * config.block_duration_ms / 1000)

        self.analyser = FrequencyAnalyser(
            fft_size=config.fft_size,
            smoothing=config.smoothing,
            min_decibels=config.min_decibels,
            max_decibels=config.max_decibels,
        )

        self._audio_queue: queue.Queue[np.ndarray] = queue.Queue()
        self._stream: Optional[sd.InputStream] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._callbacks: list[Callable[[np.ndarray], None]] = []

    def _audio_callback(
        self,
        indata: np.ndarray,
        frames: int,
        time_info: dict,
        status: sd.CallbackFlags,
    ) -> None:
        """Callback for sounddevice stream."""
        if status:
            logger.warning(f"Audio callback status: {status}")

        # Mono float32; the stream may hand us a view into its own buffer
        audio_data = indata.copy().astype(np.float32)
        if audio_data.ndim > 1:
            audio_data = audio_data.mean(axis=1)

        self._audio_queue.put(audio_data)

    def _process_loop(self) -> None:
        """Deliver queued blocks to the analyser and callbacks."""
        while self._running:
            try:
                block = self._audio_queue.get(timeout=0.5)
            except queue.Empty:
                continue
            self._deliver(block)

    def _deliver(self, block: np.ndarray) -> None:
        self.analyser.push(block)
        for callback in list(self._callbacks):
            try:
                callback(block)
            except Exception as e:
                logger.error(f"Audio callback error: {e}")

    def add_callback(self, callback: Callable[[np.ndarray], None]) -> None:
        """Register a callback for audio blocks."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[np.ndarray], None]) -> None:
        """Unregister a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _resolve_device(self) -> int | str | None:
        if self.config.device == "default":
            return None
        try:
            return int(self.config.device)
        except ValueError:
            return self.config.device

    def acquire(self) -> None:
        """Open the input stream. Raises DeviceUnavailable on failure."""
        if self._running:
            logger.warning("Capture source already acquired")
            return

        logger.info(f"Acquiring audio input: {self.sample_rate}Hz, {self.channels}ch")

        try:
            stream = sd.InputStream(
                device=self._resolve_device(),
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype=np.float32,
                blocksize=self.block_samples,
                callback=self._audio_callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            logger.error(f"Audio device unavailable: {e}")
            raise DeviceUnavailable(str(e)) from e

        self._stream = stream
        self.analyser.reset()
        self._running = True

        self._thread = threading.Thread(target=self._process_loop, daemon=True)
        self._thread.start()

        logger.info("Audio input acquired")

    def release(self) -> None:
        """Close the input stream and drain whatever is still queued."""
        if not self._running:
            return

        logger.info("Releasing audio input")

        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except sd.PortAudioError as e:
                logger.warning(f"Error closing input stream: {e}")
            self._stream = None

        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None

        # Blocks recorded before the stream stopped still belong to the session
        while True:
            try:
                block = self._audio_queue.get_nowait()
            except queue.Empty:
                break
            self._deliver(block)

        logger.info("Audio input released")

    def is_running(self) -> bool:
        """Check if the stream is open."""
        return self._running

    def byte_frequency_data(self) -> Optional[np.ndarray]:
        """Current amplitude histogram, or None while the stream is closed."""
        if not self._running:
            return None
        return self.analyser.byte_frequency_data()

    @staticmethod
    def list_devices() -> list[dict]:
        """List available audio input devices."""
        devices = []
        for i, device in enumerate(sd.query_devices()):
            if device["max_input_channels"] > 0:
                devices.append({
                    "id": i,
                    "name": device["name"],
                    "channels": device["max_input_channels"],
                    "sample_rate": device["default_samplerate"],
                })
        return devices
