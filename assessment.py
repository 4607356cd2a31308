"""Pronunciation assessment against the Azure short-audio REST endpoint.

When the provider answers without assessment data the result is simulated
from word overlap between the spoken and target text, so the caller always
gets a score, feedback and per-word details.
"""

from __future__ import annotations

import base64
import json
import logging
import math
import random
import re
from typing import Any, Optional

import requests

from config import DEFAULT_LANGUAGE, DEFAULT_TIMEOUT_S, speech_credentials
from errors import AssessmentError, CredentialsMissingError
from models import AssessmentResult, FocusSoundDetail, WordDetail

logger = logging.getLogger(__name__)

ASSESSMENT_URL = (
    "https://{region}.stt.speech.microsoft.com"
    "/speech/recognition/conversation/cognitiveservices/v1"
)
_PUNCTUATION = re.compile(r"[.,?!]")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_text(text: str) -> str:
    return _PUNCTUATION.sub("", text.lower())


def generate_feedback(score: float, focus_sound: str) -> str:
    if score >= 90:
        return "Excellent pronunciation! You've mastered this phrase."
    if score >= 70:
        return f"Good job! Try to focus more on the '{focus_sound}' sound."
    if score >= 50:
        return f"Keep practicing. Pay special attention to the '{focus_sound}' sound."
    return "Let's try again. Listen to the example and focus on each word carefully."


def focus_sound_score(words: list[WordDetail], focus_sound: str) -> int:
    """Mean accuracy of the words that contain ``focus_sound``; 0 if none do."""
    if not focus_sound:
        return 0
    sound = focus_sound.lower()
    matching = [w for w in words if sound in w.word.lower()]
    if not matching:
        return 0
    return _round_half_up(sum(w.score for w in matching) / len(matching))


def compare_texts(reference: str, recognized: str) -> dict[str, Any]:
    reference_words = normalize_text(reference).split()
    recognized_words = normalize_text(recognized).split()

    missing = [w for w in reference_words if w not in recognized_words]
    extra = [w for w in recognized_words if w not in reference_words]
    matched = len(reference_words) - len(missing)
    match_percentage = (matched / len(reference_words)) * 100 if reference_words else 0.0
    return {
        "missingWords": missing,
        "extraWords": extra,
        "matchPercentage": match_percentage,
        "referenceWordCount": len(reference_words),
        "recognizedWordCount": len(recognized_words),
    }


def simulate_assessment(
    spoken_text: str,
    target_text: str,
    focus_sound: str = "",
    rng: Optional[random.Random] = None,
) -> AssessmentResult:
    """Score by the share of target words that appear in the spoken text."""
    rng = rng or random.Random()
    target_words = normalize_text(target_text).split()
    spoken_words = normalize_text(spoken_text).split()

    missed = {i for i, word in enumerate(target_words) if word not in spoken_words}
    matched = len(target_words) - len(missed)
    score = _round_half_up(matched / len(target_words) * 100) if target_words else 0
    fluency = score - 10 if score > 80 else score
    completeness = len(spoken_words) / len(target_words) * 100 if target_words else 0.0

    words = [
        WordDetail(
            word=word,
            score=rng.randint(30, 79) if i in missed else rng.randint(70, 99),
            error_type="Mispronunciation" if i in missed else None,
        )
        for i, word in enumerate(target_words)
    ]
    return AssessmentResult(
        score=score,
        feedback=generate_feedback(score, focus_sound),
        pronunciation_score=score,
        fluency_score=fluency,
        completeness_score=completeness,
        words=words,
        focus_sound=FocusSoundDetail(sound=focus_sound, accuracy_score=rng.randint(60, 99)),
        simulated=True,
        comparison=compare_texts(target_text, spoken_text),
    )


def parse_assessment(
    payload: Any,
    spoken_text: str,
    target_text: str,
    focus_sound: str = "",
) -> Optional[AssessmentResult]:
    """Build a result from a detailed recognition response, or ``None``."""
    if not isinstance(payload, dict):
        return None
    nbest = payload.get("NBest") or []
    best = nbest[0] if nbest else None
    if not isinstance(best, dict):
        return None
    assessment = best.get("PronunciationAssessment")
    if not isinstance(assessment, dict):
        assessment = best if "AccuracyScore" in best else None
    if not assessment:
        return None

    accuracy = float(assessment.get("AccuracyScore", 0))
    words = []
    for raw in assessment.get("Words") or best.get("Words") or []:
        if not isinstance(raw, dict):
            continue
        scores = raw.get("PronunciationAssessment")
        if not isinstance(scores, dict):
            scores = raw
        error_type = scores.get("ErrorType")
        words.append(
            WordDetail(
                word=str(raw.get("Word", "")),
                score=float(scores.get("AccuracyScore", 0)),
                error_type=None if error_type in (None, "None") else str(error_type),
            )
        )

    recognized = str(payload.get("DisplayText") or best.get("Display") or spoken_text)
    return AssessmentResult(
        score=float(assessment.get("PronScore", accuracy)),
        feedback=generate_feedback(accuracy, focus_sound),
        pronunciation_score=accuracy,
        fluency_score=float(assessment.get("FluencyScore", 0)),
        completeness_score=float(assessment.get("CompletenessScore", 0)),
        words=words,
        focus_sound=FocusSoundDetail(
            sound=focus_sound,
            accuracy_score=focus_sound_score(words, focus_sound),
        ),
        comparison=compare_texts(target_text, recognized),
    )


class PronunciationAssessor:
    def __init__(
        self,
        key: str,
        region: str,
        language: str = DEFAULT_LANGUAGE,
        request_timeout_s: float = DEFAULT_TIMEOUT_S,
        session: Optional[requests.Session] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.key = key
        self.region = region
        self._language = language
        self._request_timeout_s = request_timeout_s
        self._session = session or requests.Session()
        self._rng = rng or random.Random()

    @classmethod
    def from_env(cls, **kwargs: Any) -> "PronunciationAssessor":
        key, region = speech_credentials()
        return cls(key=key, region=region, **kwargs)

    def assess(
        self,
        audio: bytes,
        content_type: str,
        spoken_text: str,
        target_text: str,
        focus_sound: str = "",
    ) -> AssessmentResult:
        if not self.key or not self.region:
            raise CredentialsMissingError()

        reference = _PUNCTUATION.sub("", target_text)
        config = {
            "ReferenceText": reference,
            "GradingSystem": "HundredMark",
            "Granularity": "Phoneme",
            "Dimension": "Comprehensive",
        }
        header = base64.b64encode(json.dumps(config).encode("utf-8")).decode("ascii")
        logger.info(
            "sending pronunciation assessment request: %d bytes, reference=%r",
            len(audio),
            reference,
        )
        try:
            response = self._session.post(
                ASSESSMENT_URL.format(region=self.region),
                params={"language": self._language, "format": "detailed"},
                headers={
                    "Ocp-Apim-Subscription-Key": self.key,
                    "Content-Type": content_type,
                    "Pronunciation-Assessment": header,
                },
                data=audio,
                timeout=self._request_timeout_s,
            )
        except requests.RequestException as exc:
            logger.error("assessment request failed: %s", exc)
            raise AssessmentError(f"Assessment request failed: {exc}", status_code=502) from exc

        if not response.ok:
            logger.error(
                "assessment API error: %s %s %s",
                response.status_code,
                response.reason,
                response.text,
            )
            raise AssessmentError(
                f"API error: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None
        result = parse_assessment(payload, spoken_text, target_text, focus_sound)
        if result is None:
            logger.warning("no pronunciation assessment data in response, simulating")
            return simulate_assessment(spoken_text, target_text, focus_sound, self._rng)
        return result
