"""Text-to-speech session with a one-time audio output unlock."""

from __future__ import annotations

import logging
import threading
from functools import partial
from typing import Any, Callable, Optional

from config import DEFAULT_LANGUAGE, DEFAULT_VOICE
from errors import (
    ERROR_MESSAGES,
    SYNTHESIS_FAILED,
    TOKEN_FETCH_FAILED,
    SpeechSessionError,
    SynthesizerInitError,
    TokenFetchError,
)
from interfaces import AudioOutput, SynthesizerAdapter, TokenProvider
from models import SpeechToken, SynthesisResult, SynthesisSnapshot

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

try:
    import azure.cognitiveservices.speech as speechsdk
except ImportError:  # pragma: no cover
    speechsdk = None  # type: ignore

logger = logging.getLogger(__name__)

SynthesizerFactory = Callable[[SpeechToken], SynthesizerAdapter]


class AudioUnlockFlag:
    """Records whether the unlock step already ran; shared across sessions."""

    def __init__(self) -> None:
        self._claimed = False
        self._lock = threading.Lock()

    @property
    def claimed(self) -> bool:
        return self._claimed

    def claim(self) -> bool:
        """Return ``True`` for the first caller only."""
        with self._lock:
            if self._claimed:
                return False
            self._claimed = True
            return True


_process_unlock_flag = AudioUnlockFlag()


def process_unlock_flag() -> AudioUnlockFlag:
    return _process_unlock_flag


class SoundDeviceOutput:
    """Output stream on the default speaker, opened in a suspended state."""

    def __init__(self, sample_rate: int = 24000) -> None:
        if sd is None or np is None:
            raise RuntimeError("sounddevice is not installed")
        self._stream: Any = sd.OutputStream(samplerate=sample_rate, channels=1, dtype="float32")
        self._closed = False

    @property
    def suspended(self) -> bool:
        return not self._stream.active

    def resume(self) -> None:
        self._stream.start()

    def play_silence(self, samples: int = 1) -> None:
        self._stream.write(np.zeros((samples, 1), dtype=np.float32))

    def close(self) -> None:
        if self._closed:
            raise RuntimeError("output is already closed")
        self._closed = True
        self._stream.stop()
        self._stream.close()


class AzureSynthesizerAdapter:
    def __init__(
        self,
        token: SpeechToken,
        voice: str = DEFAULT_VOICE,
        language: str = DEFAULT_LANGUAGE,
        audio_config: Any = None,
    ) -> None:
        if speechsdk is None:
            raise SynthesizerInitError("azure-cognitiveservices-speech is not installed")
        try:
            speech_config = speechsdk.SpeechConfig(auth_token=token.token, region=token.region)
            speech_config.speech_synthesis_language = language
            speech_config.speech_synthesis_voice_name = voice
            if audio_config is None:
                audio_config = speechsdk.audio.AudioOutputConfig(use_default_speaker=True)
            self._synthesizer: Any = speechsdk.SpeechSynthesizer(
                speech_config=speech_config,
                audio_config=audio_config,
            )
        except Exception as exc:
            raise SynthesizerInitError(f"Failed to initialize speech synthesis: {exc}") from exc

    def speak(self, text: str) -> SynthesisResult:
        if self._synthesizer is None:
            raise RuntimeError("synthesizer is closed")
        result = self._synthesizer.speak_text_async(text).get()
        if result.reason == speechsdk.ResultReason.SynthesizingAudioCompleted:
            return SynthesisResult(completed=True, audio_data=bytes(result.audio_data or b""))
        details = ""
        if result.reason == speechsdk.ResultReason.Canceled:
            details = result.cancellation_details.error_details or ""
        return SynthesisResult(completed=False, error_details=details or str(result.reason))

    def close(self) -> None:
        self._synthesizer = None


class SpeechSynthesisSession:
    def __init__(
        self,
        token_provider: TokenProvider,
        synthesizer_factory: Optional[SynthesizerFactory] = None,
        voice: str = DEFAULT_VOICE,
        unlock_flag: Optional[AudioUnlockFlag] = None,
        output_factory: Callable[[], AudioOutput] = SoundDeviceOutput,
        on_error: Optional[Callable[[str, str], None]] = None,
    ) -> None:
        self._token_provider = token_provider
        self._synthesizer_factory = synthesizer_factory or partial(AzureSynthesizerAdapter, voice=voice)
        self._unlock_flag = unlock_flag or process_unlock_flag()
        self._output_factory = output_factory
        self._on_error = on_error

        self._lock = threading.RLock()
        self._synthesizer: Optional[SynthesizerAdapter] = None
        self._output: Optional[AudioOutput] = None
        self._is_speaking = False
        self._error: Optional[str] = None

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    @property
    def error(self) -> Optional[str]:
        return self._error

    def snapshot(self) -> SynthesisSnapshot:
        with self._lock:
            return SynthesisSnapshot(is_speaking=self._is_speaking, error=self._error)

    def unlock(self) -> None:
        """Prime the audio output once per process; failures only degrade."""
        if not self._unlock_flag.claim():
            return
        try:
            with self._lock:
                if self._output is None:
                    self._output = self._output_factory()
                output = self._output
            if output.suspended:
                output.resume()
            output.play_silence(1)
        except Exception as exc:
            logger.warning("audio unlock failed: %s", exc)

    def speak(self, text: str) -> bool:
        with self._lock:
            self._error = None
        self.unlock()

        try:
            synthesizer = self._ensure_synthesizer()
        except SpeechSessionError as exc:
            self._fail(exc.code, exc.message)
            return False

        with self._lock:
            self._is_speaking = True
        try:
            result = synthesizer.speak(text)
        except Exception as exc:
            self._fail(SYNTHESIS_FAILED, f"Speech synthesis error: {exc}")
            return False

        if not result.completed:
            self._fail(SYNTHESIS_FAILED, f"{ERROR_MESSAGES[SYNTHESIS_FAILED]}: {result.error_details}")
            return False
        with self._lock:
            self._is_speaking = False
        return True

    def dispose(self) -> None:
        with self._lock:
            synthesizer = self._synthesizer
            output = self._output
            self._synthesizer = None
            self._output = None
            self._is_speaking = False
        if synthesizer is not None:
            try:
                synthesizer.close()
            except Exception as exc:
                logger.warning("error closing synthesizer: %s", exc)
        if output is not None:
            try:
                output.close()
            except Exception:
                logger.debug("audio output already closed")

    def _ensure_synthesizer(self) -> SynthesizerAdapter:
        with self._lock:
            if self._synthesizer is not None:
                return self._synthesizer

        try:
            token = self._token_provider.fetch_token()
        except SpeechSessionError:
            raise
        except Exception as exc:
            raise TokenFetchError(f"{ERROR_MESSAGES[TOKEN_FETCH_FAILED]}: {exc}") from exc
        try:
            synthesizer = self._synthesizer_factory(token)
        except SpeechSessionError:
            raise
        except Exception as exc:
            raise SynthesizerInitError(f"Failed to initialize speech synthesis: {exc}") from exc

        with self._lock:
            self._synthesizer = synthesizer
        return synthesizer

    def _fail(self, code: str, message: str) -> None:
        logger.error(message)
        with self._lock:
            self._error = message
            self._is_speaking = False
        if self._on_error:
            self._on_error(code, message)
