"""Volume sampling on a fixed cadence."""

import logging
import threading
import time
from typing import Callable, Optional, Protocol

import numpy as np

logger = logging.getLogger(__name__)


class AmplitudeSource(Protocol):
    def byte_frequency_data(self) -> Optional[np.ndarray]: ...


class VolumeMonitor:
    """Samples the capture source's amplitude histogram and reports a volume level."""

    def __init__(
        self,
        source: AmplitudeSource,
        sample_hz: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        if sample_hz <= 0:
            raise ValueError("sample_hz must be positive")
        if sample_hz < 30:
            logger.warning(f"Sampling at {sample_hz}Hz may miss short pauses")

        self.source = source
        self.sample_hz = sample_hz
        self._clock = clock
        self._level = 0.0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._on_sample: list[Callable[[float, float], None]] = []

    def sample(self) -> float:
        """Return the current volume in [0, 1]; 0 when there is no signal."""
        try:
            data = self.source.byte_frequency_data()
        except Exception as e:
            logger.debug(f"Amplitude source unavailable: {e}")
            return 0.0

        if data is None or len(data) == 0:
            return 0.0

        volume = float(np.mean(data)) / 255.0
        return min(max(volume, 0.0), 1.0)

    def on_sample(self, callback: Callable[[float, float], None]) -> None:
        """Register callback receiving ``(volume, now_ms)`` for each sample."""
        self._on_sample.append(callback)

    def _monitor_loop(self) -> None:
        interval = 1.0 / self.sample_hz
        while not self._stop_event.wait(interval):
            volume = self.sample()
            now_ms = self._clock() * 1000.0
            self._level = volume

            for callback in self._on_sample:
                try:
                    callback(volume, now_ms)
                except Exception as e:
                    logger.error(f"Volume callback error: {e}", exc_info=True)

    def start(self) -> None:
        """Start the sampling thread."""
        if self._thread is not None:
            logger.warning("Volume monitor already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._monitor_loop, daemon=True)
        self._thread.start()
        logger.debug(f"Volume monitor started at {self.sample_hz}Hz")

    def stop(self) -> None:
        """Stop sampling. Takes effect before the next sample."""
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None
        self._level = 0.0

    def is_running(self) -> bool:
        return self._thread is not None

    @property
    def level(self) -> float:
        """Most recent sampled volume."""
        return self._level
