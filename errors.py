"""Shared error codes, user-facing messages and session exceptions."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
AUDIO_INIT_FAILED = "AUDIO_INIT_FAILED"
VISUALIZATION_INIT_FAILED = "VISUALIZATION_INIT_FAILED"
UNSUPPORTED = "UNSUPPORTED"
RECORDER_START_FAILED = "RECORDER_START_FAILED"
STOP_FAILED = "STOP_FAILED"
PLAYBACK_FAILED = "PLAYBACK_FAILED"
TOKEN_FETCH_FAILED = "TOKEN_FETCH_FAILED"
CREDENTIALS_MISSING = "CREDENTIALS_MISSING"
RECOGNIZER_INIT_FAILED = "RECOGNIZER_INIT_FAILED"
RECOGNITION_START_FAILED = "RECOGNITION_START_FAILED"
RECOGNITION_STOP_FAILED = "RECOGNITION_STOP_FAILED"
RECOGNITION_CANCELED = "RECOGNITION_CANCELED"
SYNTHESIZER_INIT_FAILED = "SYNTHESIZER_INIT_FAILED"
SYNTHESIS_FAILED = "SYNTHESIS_FAILED"
ASSESSMENT_FAILED = "ASSESSMENT_FAILED"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Could not access microphone. Please check permissions.",
    AUDIO_INIT_FAILED: "Failed to initialize audio processing",
    VISUALIZATION_INIT_FAILED: "Failed to initialize audio visualization",
    UNSUPPORTED: "Recording not supported in this environment",
    RECORDER_START_FAILED: "Failed to start recording",
    STOP_FAILED: "Failed to stop recording",
    PLAYBACK_FAILED: "Failed to play recording",
    TOKEN_FETCH_FAILED: "Failed to get speech token",
    CREDENTIALS_MISSING: "Speech service credentials are not configured",
    RECOGNIZER_INIT_FAILED: "Failed to initialize speech recognition",
    RECOGNITION_START_FAILED: "Failed to start recognition",
    RECOGNITION_STOP_FAILED: "Failed to stop recognition",
    RECOGNITION_CANCELED: "Speech recognition error",
    SYNTHESIZER_INIT_FAILED: "Failed to initialize speech synthesis",
    SYNTHESIS_FAILED: "Speech synthesis failed",
    ASSESSMENT_FAILED: "Failed to evaluate pronunciation",
}


class SpeechSessionError(Exception):
    """Base error raised inside sessions and caught at their boundary."""

    code = ""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(self.code, self.code))

    @property
    def message(self) -> str:
        return str(self)


class AcquisitionError(SpeechSessionError):
    code = PERMISSION_DENIED


class AudioInitError(SpeechSessionError):
    code = AUDIO_INIT_FAILED


class VisualizationInitError(SpeechSessionError):
    code = VISUALIZATION_INIT_FAILED


class UnsupportedError(SpeechSessionError):
    code = UNSUPPORTED


class TokenFetchError(SpeechSessionError):
    code = TOKEN_FETCH_FAILED


class CredentialsMissingError(SpeechSessionError):
    code = CREDENTIALS_MISSING


class RecognizerInitError(SpeechSessionError):
    code = RECOGNIZER_INIT_FAILED


class RecognitionStartError(SpeechSessionError):
    code = RECOGNITION_START_FAILED


class RecognitionCanceledError(SpeechSessionError):
    code = RECOGNITION_CANCELED


class SynthesizerInitError(SpeechSessionError):
    code = SYNTHESIZER_INIT_FAILED


class RecorderStartError(SpeechSessionError):
    code = RECORDER_START_FAILED


class AssessmentError(SpeechSessionError):
    code = ASSESSMENT_FAILED

    def __init__(self, message: str = "", status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code
