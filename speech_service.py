"""Server-side calls to the Azure speech service: token issue and REST TTS."""

from __future__ import annotations

import logging
from typing import Optional
from xml.sax.saxutils import escape

import requests

from config import DEFAULT_LANGUAGE, DEFAULT_TIMEOUT_S, DEFAULT_VOICE, speech_credentials
from errors import CredentialsMissingError, SpeechSessionError, TokenFetchError
from models import SpeechToken

logger = logging.getLogger(__name__)

TOKEN_URL = "https://{region}.api.cognitive.microsoft.com/sts/v1.0/issueToken"
TTS_URL = "https://{region}.tts.speech.microsoft.com/cognitiveservices/v1"
TTS_OUTPUT_FORMAT = "riff-16khz-16bit-mono-pcm"


class AzureSpeechService:
    def __init__(
        self,
        key: str,
        region: str,
        request_timeout_s: float = DEFAULT_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.key = key
        self.region = region
        self._request_timeout_s = request_timeout_s
        self._session = session or requests.Session()

    @classmethod
    def from_env(cls, **kwargs: object) -> "AzureSpeechService":
        key, region = speech_credentials()
        return cls(key=key, region=region, **kwargs)  # type: ignore[arg-type]

    @property
    def configured(self) -> bool:
        return bool(self.key and self.region)

    def issue_token(self) -> SpeechToken:
        self._require_credentials()
        try:
            response = self._session.post(
                TOKEN_URL.format(region=self.region),
                headers={
                    "Ocp-Apim-Subscription-Key": self.key,
                    "Content-Type": "application/json",
                },
                timeout=self._request_timeout_s,
            )
        except requests.RequestException as exc:
            logger.error("error generating speech token: %s", exc)
            raise TokenFetchError(f"Failed to get token: {exc}") from exc
        if not response.ok:
            raise TokenFetchError(f"Failed to get token: {response.status_code} {response.reason}")
        token = response.text.strip()
        if not token:
            raise TokenFetchError("Failed to get token: empty response")
        return SpeechToken(token=token, region=self.region)

    def synthesize(self, text: str, voice: str = DEFAULT_VOICE, language: str = DEFAULT_LANGUAGE) -> bytes:
        """Render ``text`` to 16 kHz mono WAV bytes."""
        self._require_credentials()
        ssml = (
            f"<speak version='1.0' xml:lang='{language}'>"
            f"<voice xml:lang='{language}' name='{voice}'>{escape(text)}</voice>"
            "</speak>"
        )
        try:
            response = self._session.post(
                TTS_URL.format(region=self.region),
                headers={
                    "Ocp-Apim-Subscription-Key": self.key,
                    "Content-Type": "application/ssml+xml",
                    "X-Microsoft-OutputFormat": TTS_OUTPUT_FORMAT,
                },
                data=ssml.encode("utf-8"),
                timeout=self._request_timeout_s,
            )
        except requests.RequestException as exc:
            logger.error("error in speech synthesis: %s", exc)
            raise SpeechSessionError(f"Failed to synthesize speech: {exc}") from exc
        if not response.ok:
            raise SpeechSessionError(
                f"Failed to synthesize speech: {response.status_code} {response.reason}"
            )
        return response.content

    def _require_credentials(self) -> None:
        if not self.configured:
            raise CredentialsMissingError()
