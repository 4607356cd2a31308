"""Simple JSON-based config store and environment credentials."""

from __future__ import annotations

import json
import os
from pathlib import Path

DEFAULT_TOKEN_ENDPOINT = "http://127.0.0.1:8000/api/speech/token"
DEFAULT_ASSESSMENT_ENDPOINT = "http://127.0.0.1:8000/api/evaluate-pronunciation"
DEFAULT_LANGUAGE = "en-US"
DEFAULT_VOICE = "en-US-JennyNeural"
DEFAULT_TIMEOUT_S = 10.0


def speech_credentials() -> tuple[str, str]:
    """Return ``(key, region)`` for the speech service from the environment."""
    return (
        os.getenv("AZURE_SPEECH_KEY", ""),
        os.getenv("AZURE_SPEECH_REGION", ""),
    )


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "speaking" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_token_endpoint(self) -> str:
        data = self._read_all()
        return str(data.get("token_endpoint", DEFAULT_TOKEN_ENDPOINT))

    def set_token_endpoint(self, url: str) -> None:
        self._update("token_endpoint", url)

    def get_assessment_endpoint(self) -> str:
        data = self._read_all()
        return str(data.get("assessment_endpoint", DEFAULT_ASSESSMENT_ENDPOINT))

    def set_assessment_endpoint(self, url: str) -> None:
        self._update("assessment_endpoint", url)

    def get_language(self) -> str:
        data = self._read_all()
        return str(data.get("language", DEFAULT_LANGUAGE))

    def set_language(self, language: str) -> None:
        self._update("language", language)

    def get_voice(self) -> str:
        data = self._read_all()
        return str(data.get("voice", DEFAULT_VOICE))

    def set_voice(self, voice: str) -> None:
        self._update("voice", voice)

    def get_request_timeout_s(self) -> float:
        data = self._read_all()
        try:
            return float(data.get("request_timeout_s", DEFAULT_TIMEOUT_S))
        except (TypeError, ValueError):
            return DEFAULT_TIMEOUT_S

    def set_request_timeout_s(self, timeout_s: float) -> None:
        self._update("request_timeout_s", float(timeout_s))

    def _update(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
