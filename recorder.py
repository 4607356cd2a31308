"""Microphone recording: stream recorder, capture manager and playback."""

from __future__ import annotations

import io
import logging
import os
import tempfile
import threading
import wave
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Optional

from audio_graph import AnalysisContext, SoundDeviceMicrophone
from cleanup import CleanupStack
from errors import (
    ERROR_MESSAGES,
    PERMISSION_DENIED,
    PLAYBACK_FAILED,
    STOP_FAILED,
    AcquisitionError,
    AudioInitError,
    RecorderStartError,
    SpeechSessionError,
    UnsupportedError,
    VisualizationInitError,
)
from interfaces import Analyser, AnalysisContextLike, AudioPlayer, AudioStream, MediaRecorderLike, Microphone
from models import AudioBlob, AudioFrame, CaptureState, RecordingSession

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

try:
    import soundfile as sf
except Exception:  # pragma: no cover
    sf = None  # type: ignore

logger = logging.getLogger(__name__)

OPUS_MIME = "audio/ogg;codecs=opus"
WAV_MIME = "audio/wav"
MIME_PREFERENCES = (OPUS_MIME, WAV_MIME)
OPUS_SAMPLE_RATES = (8000, 12000, 16000, 24000, 48000)
FFT_SIZE = 256

_EXTENSIONS = {OPUS_MIME: ".ogg", WAV_MIME: ".wav"}


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw PCM bytes in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


def pcm_to_opus(pcm: bytes, sample_rate: int = 16000, channels: int = 1) -> bytes:
    """Encode raw PCM16 bytes as Opus in an Ogg container."""
    if sf is None or np is None:
        raise RuntimeError("soundfile is not installed")
    samples = np.frombuffer(pcm, dtype=np.int16)
    if channels > 1:
        samples = samples[: len(samples) - len(samples) % channels].reshape(-1, channels)
    buf = io.BytesIO()
    sf.write(buf, samples, sample_rate, format="OGG", subtype="OPUS")
    return buf.getvalue()


class StreamRecorder:
    """Records PCM frames from an ``AudioStream`` into an encoded blob.

    Data is flushed on ``stop``: ``on_data_available`` receives the encoded
    bytes (skipped when nothing was captured), then ``on_stop`` fires.
    """

    def __init__(self, stream: AudioStream, mime_type: str = WAV_MIME) -> None:
        if not self.is_type_supported(mime_type, stream.sample_rate):
            raise ValueError(f"unsupported mime type: {mime_type}")
        self.mime_type = mime_type
        self.on_data_available: Optional[Callable[[bytes], None]] = None
        self.on_stop: Optional[Callable[[], None]] = None
        self._stream = stream
        self._pcm = bytearray()
        self._state = "inactive"
        self._lock = threading.Lock()

    @staticmethod
    def is_type_supported(mime_type: str, sample_rate: int = 16000) -> bool:
        if mime_type == WAV_MIME:
            return True
        if mime_type == OPUS_MIME:
            if sf is None or np is None or sample_rate not in OPUS_SAMPLE_RATES:
                return False
            try:
                return "OPUS" in sf.available_subtypes("OGG")
            except Exception:
                return False
        return False

    @property
    def state(self) -> str:
        return self._state

    def start(self) -> None:
        with self._lock:
            if self._state != "inactive":
                raise RuntimeError("recorder is already recording")
            self._pcm = bytearray()
            self._state = "recording"
        self._stream.add_listener(self._on_frame)

    def stop(self) -> None:
        with self._lock:
            if self._state == "inactive":
                raise RuntimeError("recorder is not recording")
            self._state = "inactive"
            pcm = bytes(self._pcm)
            self._pcm = bytearray()
        self._stream.remove_listener(self._on_frame)

        data = self._encode(pcm) if pcm else b""
        if data and self.on_data_available is not None:
            self.on_data_available(data)
        if self.on_stop is not None:
            self.on_stop()

    def _on_frame(self, frame: AudioFrame) -> None:
        with self._lock:
            if self._state != "recording":
                return
            self._pcm.extend(frame.pcm16_bytes)

    def _encode(self, pcm: bytes) -> bytes:
        rate = self._stream.sample_rate
        channels = self._stream.channels
        if self.mime_type == OPUS_MIME:
            return pcm_to_opus(pcm, rate, channels)
        return pcm_to_wav(pcm, rate, channels)


class SoundDevicePlayer:
    """Plays an ``AudioBlob`` on the default output device without blocking."""

    def play(self, blob: AudioBlob) -> None:
        if sd is None:
            raise RuntimeError("sounddevice is not installed")
        data, sample_rate = self._decode(blob)
        sd.play(data, sample_rate)

    def _decode(self, blob: AudioBlob) -> tuple[Any, int]:
        if sf is not None:
            data, sample_rate = sf.read(io.BytesIO(blob.data), dtype="int16")
            return data, sample_rate
        if blob.mime_type != WAV_MIME or np is None:
            raise RuntimeError(f"cannot decode {blob.mime_type} without soundfile")
        with wave.open(io.BytesIO(blob.data), "rb") as wf:
            frames = wf.readframes(wf.getnframes())
            channels = wf.getnchannels()
            sample_rate = wf.getframerate()
        return np.frombuffer(frames, dtype=np.int16).reshape(-1, channels), sample_rate


class AudioCaptureManager:
    """Owns the microphone stream, analysis graph and recorder of one capture.

    Resources are pushed onto a ``CleanupStack`` as they are acquired, so any
    failure while starting tears down exactly what was built. Closing the
    analysis context is left to the recorder's stop event so that
    visualisation data stays readable until the recording is flushed.
    """

    def __init__(
        self,
        microphone: Optional[Microphone] = None,
        context_factory: Callable[[], AnalysisContextLike] = AnalysisContext,
        recorder_factory: Any = StreamRecorder,
        player: Optional[AudioPlayer] = None,
        fft_size: int = FFT_SIZE,
        mime_preferences: tuple[str, ...] = MIME_PREFERENCES,
    ) -> None:
        self._microphone = microphone or SoundDeviceMicrophone()
        self._context_factory = context_factory
        self._recorder_factory = recorder_factory
        self._player = player
        self._fft_size = fft_size
        self._mime_preferences = mime_preferences

        self._lock = threading.RLock()
        self._resources = CleanupStack()
        self._session = RecordingSession()
        self._state = CaptureState.IDLE
        self._stream: Optional[AudioStream] = None
        self._context: Optional[AnalysisContextLike] = None
        self._analyser: Optional[Analyser] = None
        self._recorder: Optional[MediaRecorderLike] = None
        self._chunks: list[bytes] = []
        self._published_path: Optional[Path] = None

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._session.is_recording

    @property
    def audio_blob(self) -> Optional[AudioBlob]:
        return self._session.audio_blob

    @property
    def audio_url(self) -> Optional[str]:
        return self._session.audio_url

    @property
    def error(self) -> Optional[str]:
        return self._session.error

    def snapshot(self) -> RecordingSession:
        with self._lock:
            return replace(self._session)

    def start_recording(self) -> bool:
        with self._lock:
            self._cleanup_resources()
            self._chunks = []
            try:
                self._acquire()
            except SpeechSessionError as exc:
                logger.error("start recording failed: %s", exc)
                self._cleanup_resources()
                self._session = replace(self._session, is_recording=False, error=exc.message)
                return False
            self._session = RecordingSession(is_recording=True)
            self._state = CaptureState.RECORDING
            return True

    def stop_recording(self) -> None:
        with self._lock:
            recorder = self._recorder
            if recorder is not None and self._session.is_recording:
                self._state = CaptureState.STOPPING
                try:
                    recorder.stop()
                except Exception as exc:
                    logger.error("error stopping recorder: %s", exc)
                    self._session = replace(
                        self._session,
                        is_recording=False,
                        error=ERROR_MESSAGES[STOP_FAILED],
                    )
                    self._guarded("analysis context", self._close_context)
                    self._state = CaptureState.IDLE
            self._guarded("stream", self._stop_stream)

    def get_audio_data(self) -> Any:
        analyser = self._analyser
        context = self._context
        if analyser is None or context is None or context.state == "closed":
            return None
        try:
            return analyser.get_byte_frequency_data()
        except Exception as exc:
            logger.error("error reading audio data: %s", exc)
            return None

    def play_recording(self) -> bool:
        with self._lock:
            blob = self._session.audio_blob
            if blob is None or self._session.audio_url is None:
                return False
            if self._player is None:
                self._player = SoundDevicePlayer()
            player = self._player
        try:
            player.play(blob)
        except Exception as exc:
            logger.error("error playing audio: %s", exc)
            with self._lock:
                self._session = replace(self._session, error=ERROR_MESSAGES[PLAYBACK_FAILED])
            return False
        return True

    def dispose(self) -> None:
        with self._lock:
            self._cleanup_resources()

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def _acquire(self) -> None:
        try:
            stream = self._microphone.open()
        except Exception as exc:
            raise AcquisitionError(f"{ERROR_MESSAGES[PERMISSION_DENIED]} ({exc})") from exc
        self._stream = stream
        self._resources.push("stream", self._stop_stream)

        try:
            context = self._context_factory()
        except Exception as exc:
            logger.error("failed to create analysis context: %s", exc)
            raise AudioInitError() from exc
        self._context = context
        self._resources.push("analysis context", self._close_context)

        try:
            self._analyser = context.create_analyser(stream, self._fft_size)
        except Exception as exc:
            logger.error("failed to set up audio analysis: %s", exc)
            raise VisualizationInitError() from exc

        recorder = self._create_recorder(stream)
        self._recorder = recorder
        self._resources.push("recorder", self._discard_recorder)
        recorder.on_data_available = self._handle_data_available
        recorder.on_stop = self._handle_recorder_stop
        try:
            recorder.start()
        except Exception as exc:
            logger.error("failed to start recorder: %s", exc)
            raise RecorderStartError() from exc

    def _create_recorder(self, stream: AudioStream) -> MediaRecorderLike:
        factory = self._recorder_factory
        if factory is None:
            raise UnsupportedError()
        mime_type = next(
            (m for m in self._mime_preferences if factory.is_type_supported(m, stream.sample_rate)),
            None,
        )
        if mime_type is None:
            raise UnsupportedError()
        try:
            return factory(stream, mime_type=mime_type)
        except Exception as exc:
            logger.error("failed to create recorder: %s", exc)
            raise UnsupportedError() from exc

    # ------------------------------------------------------------------
    # Recorder events
    # ------------------------------------------------------------------

    def _handle_data_available(self, data: bytes) -> None:
        if data:
            self._chunks.append(data)

    def _handle_recorder_stop(self) -> None:
        with self._lock:
            recorder = self._recorder
            self._guarded("analysis context", self._close_context)
            self._state = CaptureState.IDLE
            if not self._chunks:
                self._session = replace(self._session, is_recording=False)
                return

            mime_type = recorder.mime_type if recorder is not None else WAV_MIME
            blob = AudioBlob(data=b"".join(self._chunks), mime_type=mime_type)
            self._chunks = []
            url = self._publish(blob)
            self._session = replace(self._session, is_recording=False, audio_blob=blob, audio_url=url)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _cleanup_resources(self) -> None:
        self._resources.close()
        self._guarded("object url", self._revoke_url)
        self._state = CaptureState.IDLE
        self._session = replace(self._session, is_recording=False)

    def _discard_recorder(self) -> None:
        recorder = self._recorder
        self._recorder = None
        if recorder is None:
            return
        recorder.on_data_available = None
        recorder.on_stop = None
        if recorder.state != "inactive":
            recorder.stop()

    def _stop_stream(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is not None:
            stream.stop()

    def _close_context(self) -> None:
        context = self._context
        self._context = None
        self._analyser = None
        if context is not None and context.state != "closed":
            context.close()

    def _publish(self, blob: AudioBlob) -> Optional[str]:
        self._guarded("object url", self._revoke_url)
        suffix = _EXTENSIONS.get(blob.mime_type, ".bin")
        try:
            fd, name = tempfile.mkstemp(prefix="speaking-", suffix=suffix)
        except OSError as exc:
            logger.error("could not publish recording: %s", exc)
            return None
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(blob.data)
        except OSError as exc:
            logger.error("could not publish recording: %s", exc)
            Path(name).unlink(missing_ok=True)
            return None
        self._published_path = Path(name)
        return self._published_path.as_uri()

    def _revoke_url(self) -> None:
        path = self._published_path
        self._published_path = None
        if self._session.audio_url is not None:
            self._session = replace(self._session, audio_url=None, audio_blob=None)
        if path is not None:
            path.unlink(missing_ok=True)

    def _guarded(self, label: str, step: Callable[[], None]) -> None:
        try:
            step()
        except Exception as exc:
            logger.warning("cleanup step %r failed: %s", label, exc)
