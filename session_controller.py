"""State-machine based speech recognition session.

``RecognitionSession`` drives one recognizer adapter through
``IDLE -> LISTENING -> FINALIZING -> IDLE`` and accumulates finalized
utterances into ``recognized_text``. A raw audio capture runs alongside the
recognizer so the utterance can later be scored for pronunciation.

Provider calls (token fetch, start, stop) run outside the session lock so
SDK callback threads can deliver events while those calls are in flight.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from errors import (
    ERROR_MESSAGES,
    RECOGNITION_START_FAILED,
    RECOGNITION_STOP_FAILED,
    TOKEN_FETCH_FAILED,
    RecognitionCanceledError,
    RecognitionStartError,
    RecognizerInitError,
    SpeechSessionError,
    TokenFetchError,
)
from interfaces import RawAudioCapture, RecognizerAdapter, TokenProvider
from models import (
    AudioBlob,
    CancellationKind,
    RecognitionEvent,
    RecognitionKind,
    RecognitionSnapshot,
    RecognitionState,
    SpeechToken,
)
from recognizer import AzureRecognizerAdapter

logger = logging.getLogger(__name__)

RecognizerFactory = Callable[[SpeechToken], RecognizerAdapter]
StateCallback = Callable[[RecognitionState, RecognitionState], None]
TextCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]


class RecognitionSession:
    def __init__(
        self,
        token_provider: TokenProvider,
        recognizer_factory: RecognizerFactory = AzureRecognizerAdapter,
        audio_capture: Optional[RawAudioCapture] = None,
        on_state_change: Optional[StateCallback] = None,
        on_text: Optional[TextCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._token_provider = token_provider
        self._recognizer_factory = recognizer_factory
        self._audio_capture = audio_capture
        self._on_state_change = on_state_change
        self._on_text = on_text
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = RecognitionState.IDLE
        self._recognizer: Optional[RecognizerAdapter] = None
        self._recognized_text = ""
        self._is_recognizing = False
        self._error: Optional[str] = None

    @property
    def state(self) -> RecognitionState:
        return self._state

    @property
    def recognized_text(self) -> str:
        return self._recognized_text

    @property
    def is_recognizing(self) -> bool:
        return self._is_recognizing

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def audio_data(self) -> Optional[AudioBlob]:
        if self._audio_capture is None:
            return None
        return self._audio_capture.audio_blob

    def snapshot(self) -> RecognitionSnapshot:
        with self._lock:
            return RecognitionSnapshot(
                recognized_text=self._recognized_text,
                is_recognizing=self._is_recognizing,
                error=self._error,
                audio_data=self.audio_data,
                state=self._state,
            )

    def start_recognition(self) -> bool:
        with self._lock:
            self._recognized_text = ""
            self._error = None
            previous = self._recognizer if self._state != RecognitionState.IDLE else None
        if previous is not None:
            self._safe_stop_recognizer(previous)

        try:
            recognizer = self._ensure_recognizer()
        except SpeechSessionError as exc:
            self._fail(exc)
            return False

        self._start_audio_capture()
        with self._lock:
            self._is_recognizing = True
            self._transition(RecognitionState.LISTENING)

        try:
            recognizer.start(self.handle_event)
        except Exception as exc:
            message = f"{ERROR_MESSAGES[RECOGNITION_START_FAILED]}: {exc}"
            self._fail(RecognitionStartError(message))
            return False
        return True

    def stop_recognition(self) -> None:
        with self._lock:
            recognizer = self._recognizer
            if recognizer is None or self._state == RecognitionState.IDLE:
                return
            self._transition(RecognitionState.FINALIZING)

        try:
            recognizer.stop()
        except Exception as exc:
            message = f"{ERROR_MESSAGES[RECOGNITION_STOP_FAILED]}: {exc}"
            logger.error(message)
            with self._lock:
                self._error = message
            self._emit_error(RECOGNITION_STOP_FAILED, message)
        finally:
            self._stop_audio_capture()
            with self._lock:
                self._is_recognizing = False
                self._transition(RecognitionState.IDLE)

    def dispose(self) -> None:
        with self._lock:
            recognizer = self._recognizer
            was_active = self._state != RecognitionState.IDLE
            self._recognizer = None
            self._is_recognizing = False
            self._transition(RecognitionState.IDLE)

        if recognizer is not None:
            if was_active:
                self._safe_stop_recognizer(recognizer)
            try:
                recognizer.close()
            except Exception as exc:
                logger.warning("error closing recognizer: %s", exc)
        if self._audio_capture is not None:
            try:
                self._audio_capture.dispose()
            except Exception as exc:
                logger.warning("error disposing audio capture: %s", exc)

    def handle_event(self, event: RecognitionEvent) -> None:
        """Apply one recognizer event to the session state."""
        finalize_capture = False
        with self._lock:
            kind = event.kind
            if kind == RecognitionKind.RECOGNIZING.value:
                if self._state == RecognitionState.LISTENING:
                    self._is_recognizing = True
                return

            if kind == RecognitionKind.RECOGNIZED.value:
                if self._state == RecognitionState.IDLE:
                    return
                text = event.text.strip()
                if text:
                    if self._recognized_text:
                        self._recognized_text = f"{self._recognized_text} {text}"
                    else:
                        self._recognized_text = text
                    if self._on_text:
                        self._on_text(self._recognized_text)
                self._is_recognizing = False
                return

            if kind == RecognitionKind.CANCELED.value:
                self._is_recognizing = False
                if event.reason == CancellationKind.ERROR.value:
                    error = RecognitionCanceledError(f"Speech recognition error: {event.message}")
                    logger.error(error.message)
                    self._error = error.message
                    self._emit_error(error.code, error.message)
                finalize_capture = self._state == RecognitionState.LISTENING
                if finalize_capture:
                    self._transition(RecognitionState.IDLE)
            elif kind == RecognitionKind.SESSION_STOPPED.value:
                self._is_recognizing = False
                finalize_capture = self._state == RecognitionState.LISTENING
                if finalize_capture:
                    self._transition(RecognitionState.IDLE)

        if finalize_capture:
            self._stop_audio_capture()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _ensure_recognizer(self) -> RecognizerAdapter:
        with self._lock:
            if self._recognizer is not None:
                return self._recognizer

        try:
            token = self._token_provider.fetch_token()
        except SpeechSessionError:
            raise
        except Exception as exc:
            raise TokenFetchError(f"{ERROR_MESSAGES[TOKEN_FETCH_FAILED]}: {exc}") from exc
        try:
            recognizer = self._recognizer_factory(token)
        except SpeechSessionError:
            raise
        except Exception as exc:
            raise RecognizerInitError(f"Failed to initialize speech recognition: {exc}") from exc

        with self._lock:
            self._recognizer = recognizer
        return recognizer

    def _fail(self, exc: SpeechSessionError) -> None:
        logger.error("recognition failed: %s", exc)
        with self._lock:
            self._is_recognizing = False
            self._error = exc.message
            self._transition(RecognitionState.IDLE)
        self._emit_error(exc.code, exc.message)
        self._stop_audio_capture()

    def _start_audio_capture(self) -> None:
        capture = self._audio_capture
        if capture is None:
            return
        try:
            if not capture.start_recording():
                logger.warning("raw audio capture unavailable: %s", capture.error)
        except Exception as exc:
            logger.warning("raw audio capture failed to start: %s", exc)

    def _stop_audio_capture(self) -> None:
        capture = self._audio_capture
        if capture is None:
            return
        try:
            capture.stop_recording()
        except Exception as exc:
            logger.warning("error stopping raw audio capture: %s", exc)

    def _safe_stop_recognizer(self, recognizer: RecognizerAdapter) -> None:
        try:
            recognizer.stop()
        except Exception as exc:
            logger.warning("error stopping recognizer: %s", exc)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _transition(self, to_state: RecognitionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
