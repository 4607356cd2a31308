"""Core data models for the speech sessions and services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class CaptureState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    STOPPING = "STOPPING"


class RecognitionState(str, Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"
    FINALIZING = "FINALIZING"


class RecognitionKind(str, Enum):
    RECOGNIZING = "recognizing"
    RECOGNIZED = "recognized"
    CANCELED = "canceled"
    SESSION_STOPPED = "session_stopped"


class CancellationKind(str, Enum):
    ERROR = "error"
    END_OF_STREAM = "end_of_stream"
    CANCELLED_BY_USER = "cancelled_by_user"


class RecordKind(str, Enum):
    PRONUNCIATION = "pronunciation"
    CONVERSATION = "conversation"
    REFLEX = "reflex"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass(frozen=True)
class AudioBlob:
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class RecordingSession:
    is_recording: bool = False
    audio_blob: Optional[AudioBlob] = None
    audio_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RecognitionEvent:
    kind: str
    text: str = ""
    reason: str = ""
    message: str = ""


@dataclass(frozen=True)
class RecognitionSnapshot:
    recognized_text: str
    is_recognizing: bool
    error: Optional[str]
    audio_data: Optional[AudioBlob]
    state: RecognitionState


@dataclass(frozen=True)
class SynthesisSnapshot:
    is_speaking: bool
    error: Optional[str]


@dataclass(frozen=True)
class SpeechToken:
    token: str
    region: str


@dataclass
class SynthesisResult:
    completed: bool
    error_details: str = ""
    audio_data: bytes = b""


@dataclass
class WordDetail:
    word: str
    score: float
    error_type: Optional[str] = None


@dataclass
class FocusSoundDetail:
    sound: str
    accuracy_score: float


@dataclass
class AssessmentResult:
    score: float
    feedback: str
    pronunciation_score: float
    fluency_score: float
    completeness_score: float
    words: list[WordDetail] = field(default_factory=list)
    focus_sound: Optional[FocusSoundDetail] = None
    simulated: bool = False
    comparison: dict[str, Any] = field(default_factory=dict)

    def to_response(self) -> dict[str, Any]:
        details: dict[str, Any] = {
            "pronunciationScore": self.pronunciation_score,
            "fluencyScore": self.fluency_score,
            "completenessScore": self.completeness_score,
            "words": [
                {"word": w.word, "score": w.score, "errorType": w.error_type}
                for w in self.words
            ],
        }
        if self.focus_sound is not None:
            details["focusSound"] = {
                "sound": self.focus_sound.sound,
                "accuracyScore": self.focus_sound.accuracy_score,
            }
        if self.comparison:
            details["comparison"] = self.comparison
        return {
            "success": True,
            "score": self.score,
            "feedback": self.feedback,
            "simulated": self.simulated,
            "details": details,
        }


@dataclass
class SpeakingRecord:
    id: str
    user_id: str
    kind: RecordKind
    duration: float
    created_at: datetime
    topic_title: Optional[str] = None
    question_text: Optional[str] = None
