"""Continuous speech recognition adapter for Azure Cognitive Services.

The adapter owns one ``SpeechRecognizer`` bound to the default microphone
and translates SDK callbacks into ``RecognitionEvent`` values delivered
through ``on_event``. It holds no session state of its own; accumulation and
state transitions live in ``session_controller.RecognitionSession``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from config import DEFAULT_LANGUAGE
from errors import RecognizerInitError
from models import CancellationKind, RecognitionEvent, RecognitionKind, SpeechToken

try:
    import azure.cognitiveservices.speech as speechsdk
except ImportError:  # pragma: no cover
    speechsdk = None  # type: ignore

logger = logging.getLogger(__name__)


class AzureRecognizerAdapter:
    def __init__(
        self,
        token: SpeechToken,
        language: str = DEFAULT_LANGUAGE,
        audio_config: Any = None,
    ) -> None:
        if speechsdk is None:
            raise RecognizerInitError("azure-cognitiveservices-speech is not installed")
        try:
            speech_config = speechsdk.SpeechConfig(auth_token=token.token, region=token.region)
            speech_config.speech_recognition_language = language
            if audio_config is None:
                audio_config = speechsdk.audio.AudioConfig(use_default_microphone=True)
            self._recognizer: Any = speechsdk.SpeechRecognizer(
                speech_config=speech_config,
                audio_config=audio_config,
            )
        except Exception as exc:
            raise RecognizerInitError(f"Failed to initialize speech recognition: {exc}") from exc
        self._on_event: Optional[Callable[[RecognitionEvent], None]] = None
        self._connected = False

    def start(self, on_event: Callable[[RecognitionEvent], None]) -> None:
        """Begin continuous recognition; raises if the provider rejects it."""
        if self._recognizer is None:
            raise RuntimeError("recognizer is closed")
        self._on_event = on_event
        if not self._connected:
            self._recognizer.recognizing.connect(self._on_recognizing)
            self._recognizer.recognized.connect(self._on_recognized)
            self._recognizer.canceled.connect(self._on_canceled)
            self._recognizer.session_stopped.connect(self._on_session_stopped)
            self._connected = True
        self._recognizer.start_continuous_recognition_async().get()

    def stop(self) -> None:
        if self._recognizer is None:
            return
        self._recognizer.stop_continuous_recognition_async().get()

    def close(self) -> None:
        recognizer = self._recognizer
        self._recognizer = None
        self._on_event = None
        if recognizer is None or not self._connected:
            return
        for signal in (
            recognizer.recognizing,
            recognizer.recognized,
            recognizer.canceled,
            recognizer.session_stopped,
        ):
            signal.disconnect_all()
        self._connected = False

    # ------------------------------------------------------------------
    # SDK callbacks (called from SDK threads)
    # ------------------------------------------------------------------

    def _on_recognizing(self, evt: Any) -> None:
        self._emit(RecognitionEvent(kind=RecognitionKind.RECOGNIZING.value, text=evt.result.text or ""))

    def _on_recognized(self, evt: Any) -> None:
        if evt.result.reason != speechsdk.ResultReason.RecognizedSpeech:
            logger.debug("ignoring recognition result with reason %s", evt.result.reason)
            return
        self._emit(RecognitionEvent(kind=RecognitionKind.RECOGNIZED.value, text=evt.result.text or ""))

    def _on_canceled(self, evt: Any) -> None:
        details = evt.cancellation_details
        self._emit(
            RecognitionEvent(
                kind=RecognitionKind.CANCELED.value,
                reason=self._cancellation_kind(details.reason).value,
                message=details.error_details or "",
            )
        )

    def _on_session_stopped(self, evt: Any) -> None:
        self._emit(RecognitionEvent(kind=RecognitionKind.SESSION_STOPPED.value))

    def _emit(self, event: RecognitionEvent) -> None:
        on_event = self._on_event
        if on_event is not None:
            on_event(event)

    @staticmethod
    def _cancellation_kind(reason: Any) -> CancellationKind:
        if reason == speechsdk.CancellationReason.Error:
            return CancellationKind.ERROR
        if reason == speechsdk.CancellationReason.EndOfStream:
            return CancellationKind.END_OF_STREAM
        return CancellationKind.CANCELLED_BY_USER
