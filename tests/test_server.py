"""HTTP route tests using FastAPI's TestClient with fake backends."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from errors import AssessmentError, CredentialsMissingError, TokenFetchError
from models import AssessmentResult, FocusSoundDetail, SpeechToken, WordDetail
from server import create_app
from speaking_stats import InMemoryRecordStore
from ttl_cache import TTLCache


class FakeSpeechService:
    def __init__(self, token_error: Exception | None = None) -> None:
        self.token_error = token_error
        self.synthesized: list[str] = []

    def issue_token(self) -> SpeechToken:
        if self.token_error is not None:
            raise self.token_error
        return SpeechToken(token="tok-1", region="eastus")

    def synthesize(self, text: str) -> bytes:
        self.synthesized.append(text)
        return b"RIFF0000WAVE"


class FakeAssessor:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple] = []

    def assess(self, audio, content_type, spoken_text, target_text, focus_sound=""):  # noqa: ANN001, ANN201
        self.calls.append((audio, content_type, spoken_text, target_text, focus_sound))
        if self.error is not None:
            raise self.error
        return AssessmentResult(
            score=88,
            feedback="Good job! Try to focus more on the 'th' sound.",
            pronunciation_score=85,
            fluency_score=90,
            completeness_score=100,
            words=[WordDetail("think", 70, "Mispronunciation")],
            focus_sound=FocusSoundDetail("th", 70),
        )


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def _client(clock: FakeClock, speech=None, assessor=None) -> TestClient:  # noqa: ANN001
    app = create_app(
        speech_service=speech or FakeSpeechService(),
        assessor=assessor or FakeAssessor(),
        records=InMemoryRecordStore(),
        cache=TTLCache(clock=clock),
    )
    return TestClient(app)


# ---------------------------------------------------------------
# /api/speech/*
# ---------------------------------------------------------------

def test_speech_token(clock: FakeClock) -> None:
    response = _client(clock).get("/api/speech/token")
    assert response.status_code == 200
    assert response.json() == {"token": "tok-1", "region": "eastus"}


def test_speech_token_without_credentials(clock: FakeClock) -> None:
    client = _client(clock, speech=FakeSpeechService(token_error=CredentialsMissingError()))
    response = client.get("/api/speech/token")
    assert response.status_code == 500
    assert response.json() == {"error": "Speech service credentials are not configured"}


def test_speech_token_provider_failure(clock: FakeClock) -> None:
    client = _client(clock, speech=FakeSpeechService(token_error=TokenFetchError("Failed to get token: 401 Unauthorized")))
    response = client.get("/api/speech/token")
    assert response.status_code == 500
    assert "401" in response.json()["error"]


def test_synthesize(clock: FakeClock) -> None:
    speech = FakeSpeechService()
    response = _client(clock, speech=speech).post("/api/speech/synthesize", json={"text": "hello"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/wav"
    assert response.content == b"RIFF0000WAVE"
    assert speech.synthesized == ["hello"]


def test_synthesize_requires_text(clock: FakeClock) -> None:
    response = _client(clock).post("/api/speech/synthesize", json={"text": ""})
    assert response.status_code == 400
    assert response.json() == {"error": "Text is required"}


# ---------------------------------------------------------------
# /api/evaluate-pronunciation
# ---------------------------------------------------------------

def test_evaluate_pronunciation(clock: FakeClock) -> None:
    assessor = FakeAssessor()
    response = _client(clock, assessor=assessor).post(
        "/api/evaluate-pronunciation",
        files={"audio": ("recording.wav", b"RIFFdata", "audio/wav")},
        data={"text": "think about it", "targetText": "Think about it.", "focusSound": "th"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["score"] == 88
    assert body["details"]["words"] == [{"word": "think", "score": 70, "errorType": "Mispronunciation"}]
    assert body["details"]["focusSound"] == {"sound": "th", "accuracyScore": 70}
    assert assessor.calls == [(b"RIFFdata", "audio/wav", "think about it", "Think about it.", "th")]


@pytest.mark.parametrize(
    ("files", "data"),
    [
        (None, {"text": "hi", "targetText": "hi"}),
        ({"audio": ("r.wav", b"RIFF", "audio/wav")}, {"targetText": "hi"}),
        ({"audio": ("r.wav", b"RIFF", "audio/wav")}, {"text": "hi"}),
    ],
)
def test_evaluate_missing_fields(clock: FakeClock, files, data) -> None:  # noqa: ANN001
    response = _client(clock).post("/api/evaluate-pronunciation", files=files, data=data)
    assert response.status_code == 400
    assert response.json() == {"error": "Missing required fields"}


def test_evaluate_upstream_error_keeps_status(clock: FakeClock) -> None:
    assessor = FakeAssessor(error=AssessmentError("API error: 401 Unauthorized", status_code=401))
    response = _client(clock, assessor=assessor).post(
        "/api/evaluate-pronunciation",
        files={"audio": ("r.wav", b"RIFF", "audio/wav")},
        data={"text": "hi", "targetText": "hi"},
    )
    assert response.status_code == 401
    assert response.json() == {"error": "API error: 401 Unauthorized"}


def test_evaluate_without_credentials(clock: FakeClock) -> None:
    assessor = FakeAssessor(error=CredentialsMissingError())
    response = _client(clock, assessor=assessor).post(
        "/api/evaluate-pronunciation",
        files={"audio": ("r.wav", b"RIFF", "audio/wav")},
        data={"text": "hi", "targetText": "hi"},
    )
    assert response.status_code == 500


# ---------------------------------------------------------------
# /api/speaking-stats and /api/speaking-records
# ---------------------------------------------------------------

def test_stats_require_user(clock: FakeClock) -> None:
    response = _client(clock).get("/api/speaking-stats")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_stats_are_cached_and_invalidated(clock: FakeClock) -> None:
    client = _client(clock)
    headers = {"X-User-Id": "u1"}

    first = client.get("/api/speaking-stats", headers=headers).json()
    assert first["cached"] is False
    assert first["data"]["totalSpeakingCount"] == 0

    second = client.get("/api/speaking-stats", headers=headers).json()
    assert second["cached"] is True

    created = client.post(
        "/api/speaking-records",
        json={"kind": "conversation", "duration": 90, "topic_title": "Travel"},
        headers=headers,
    )
    assert created.status_code == 201

    third = client.get("/api/speaking-stats", headers=headers).json()
    assert third["cached"] is False
    assert third["data"]["totalSpeakingCount"] == 1
    assert third["data"]["conversationCount"] == 1


def test_stats_cache_expires(clock: FakeClock) -> None:
    client = _client(clock)
    headers = {"X-User-Id": "u1"}
    client.get("/api/speaking-stats", headers=headers)

    clock.now += 301

    assert client.get("/api/speaking-stats", headers=headers).json()["cached"] is False


def test_record_rejects_unknown_kind(clock: FakeClock) -> None:
    response = _client(clock).post(
        "/api/speaking-records",
        json={"kind": "karaoke", "duration": 10},
        headers={"X-User-Id": "u1"},
    )
    assert response.status_code == 422


def test_record_requires_user(clock: FakeClock) -> None:
    response = _client(clock).post("/api/speaking-records", json={"kind": "reflex", "duration": 10})
    assert response.status_code == 401
