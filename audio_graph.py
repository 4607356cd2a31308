"""Microphone stream and frequency analysis graph.

``MicrophoneStream`` fans captured PCM frames out to any number of listeners
(the spectrum analyser and the stream recorder both subscribe to the same
stream). ``AnalysisContext`` owns the analysers it creates and disconnects
them when closed.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from interfaces import AudioStream, FrameListener
from models import AudioFrame

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0
SMOOTHING_TIME_CONSTANT = 0.8


class MicrophoneStream:
    def __init__(self, sample_rate: int = 16000, channels: int = 1, chunk_ms: int = 100) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self._stream: Any = None
        self._listeners: list[FrameListener] = []
        self._lock = threading.Lock()
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=blocksize,
                callback=self._on_audio,
            )
            self._stream.start()
            self._active = True

    def stop(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            stream = self._stream
            self._stream = None
            self._listeners = []
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()

    def add_listener(self, listener: FrameListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: FrameListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._active or np is None:
            return
        if status:
            logger.debug("input stream status: %s", status)
        frame = AudioFrame(
            pcm16_bytes=np.asarray(indata, dtype=np.int16).tobytes(),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        self.dispatch(frame)

    def dispatch(self, frame: AudioFrame) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(frame)


class SoundDeviceMicrophone:
    """Opens the default input device; each ``open`` returns a live stream."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1, chunk_ms: int = 100) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms

    def open(self) -> MicrophoneStream:
        stream = MicrophoneStream(self.sample_rate, self.channels, self.chunk_ms)
        stream.start()
        return stream


class SpectrumAnalyser:
    """Byte frequency data over the most recent ``fft_size`` samples.

    Mirrors the Web Audio analyser: Blackman window, magnitude smoothing over
    time, decibel scaling clamped into ``0..255``.
    """

    def __init__(
        self,
        fft_size: int = 256,
        min_decibels: float = MIN_DECIBELS,
        max_decibels: float = MAX_DECIBELS,
        smoothing_time_constant: float = SMOOTHING_TIME_CONSTANT,
    ) -> None:
        if np is None:
            raise RuntimeError("numpy is not installed")
        if fft_size < 32 or fft_size > 32768 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two in [32, 32768], got {fft_size}")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be lower than max_decibels")
        self.fft_size = fft_size
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self.smoothing_time_constant = smoothing_time_constant
        self._samples = np.zeros(fft_size, dtype=np.float64)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)
        n = np.arange(fft_size)
        self._window = (
            0.42
            - 0.5 * np.cos(2 * np.pi * n / fft_size)
            + 0.08 * np.cos(4 * np.pi * n / fft_size)
        )
        self._lock = threading.Lock()

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def feed(self, frame: AudioFrame) -> None:
        samples = np.frombuffer(frame.pcm16_bytes, dtype=np.int16).astype(np.float64) / 32768.0
        if frame.channels > 1:
            usable = len(samples) - len(samples) % frame.channels
            samples = samples[:usable].reshape(-1, frame.channels).mean(axis=1)
        if samples.size == 0:
            return
        with self._lock:
            if samples.size >= self.fft_size:
                self._samples = samples[-self.fft_size:].copy()
            else:
                self._samples = np.concatenate([self._samples[samples.size:], samples])

    def get_byte_frequency_data(self) -> "np.ndarray":
        with self._lock:
            spectrum = np.fft.rfft(self._samples * self._window)[: self.frequency_bin_count]
            magnitude = np.abs(spectrum) / self.fft_size
            tau = self.smoothing_time_constant
            self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude
            smoothed = self._smoothed.copy()

        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(smoothed)
        span = self.max_decibels - self.min_decibels
        scaled = np.floor((255.0 / span) * (decibels - self.min_decibels))
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)


class AnalysisContext:
    """Owns the analysers connected to microphone streams."""

    def __init__(self) -> None:
        if np is None:
            raise RuntimeError("numpy is not installed")
        self._state = "running"
        self._connections: list[tuple[AudioStream, SpectrumAnalyser]] = []
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state

    def create_analyser(self, stream: AudioStream, fft_size: int = 256) -> SpectrumAnalyser:
        with self._lock:
            if self._state == "closed":
                raise RuntimeError("analysis context is closed")
            analyser = SpectrumAnalyser(fft_size=fft_size)
            stream.add_listener(analyser.feed)
            self._connections.append((stream, analyser))
            return analyser

    def close(self) -> None:
        with self._lock:
            if self._state == "closed":
                raise RuntimeError("analysis context is already closed")
            self._state = "closed"
            connections = self._connections
            self._connections = []
        for stream, analyser in connections:
            stream.remove_listener(analyser.feed)


def frame_from_samples(samples: "np.ndarray", sample_rate: int = 16000) -> AudioFrame:
    """Build a mono ``AudioFrame`` from float samples in ``[-1, 1]``."""
    pcm = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0) * 32767.0
    return AudioFrame(pcm16_bytes=pcm.astype(np.int16).tobytes(), sample_rate=sample_rate)
