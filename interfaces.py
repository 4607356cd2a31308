"""Protocol interfaces used by the speech sessions."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from models import AudioBlob, AudioFrame, RecognitionEvent, SpeechToken, SynthesisResult

FrameListener = Callable[[AudioFrame], None]


class AudioStream(Protocol):
    sample_rate: int
    channels: int

    @property
    def active(self) -> bool: ...

    def add_listener(self, listener: FrameListener) -> None: ...

    def remove_listener(self, listener: FrameListener) -> None: ...

    def stop(self) -> None: ...


class Microphone(Protocol):
    def open(self) -> AudioStream: ...


class Analyser(Protocol):
    fft_size: int

    @property
    def frequency_bin_count(self) -> int: ...

    def get_byte_frequency_data(self) -> object: ...


class AnalysisContextLike(Protocol):
    @property
    def state(self) -> str: ...

    def create_analyser(self, stream: AudioStream, fft_size: int) -> Analyser: ...

    def close(self) -> None: ...


class MediaRecorderLike(Protocol):
    mime_type: str
    on_data_available: Optional[Callable[[bytes], None]]
    on_stop: Optional[Callable[[], None]]

    @property
    def state(self) -> str: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


class AudioPlayer(Protocol):
    def play(self, blob: AudioBlob) -> None: ...


class RawAudioCapture(Protocol):
    @property
    def audio_blob(self) -> Optional[AudioBlob]: ...

    @property
    def error(self) -> Optional[str]: ...

    def start_recording(self) -> bool: ...

    def stop_recording(self) -> None: ...

    def dispose(self) -> None: ...


class TokenProvider(Protocol):
    def fetch_token(self) -> SpeechToken: ...


class RecognizerAdapter(Protocol):
    def start(self, on_event: Callable[[RecognitionEvent], None]) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


class SynthesizerAdapter(Protocol):
    def speak(self, text: str) -> SynthesisResult: ...

    def close(self) -> None: ...


class AudioOutput(Protocol):
    @property
    def suspended(self) -> bool: ...

    def resume(self) -> None: ...

    def play_silence(self, samples: int = 1) -> None: ...

    def close(self) -> None: ...
