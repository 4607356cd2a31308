from __future__ import annotations

from pathlib import Path

from config import (
    DEFAULT_ASSESSMENT_ENDPOINT,
    DEFAULT_TIMEOUT_S,
    DEFAULT_TOKEN_ENDPOINT,
    DEFAULT_VOICE,
    JsonConfigStore,
    speech_credentials,
)


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    assert store.get_token_endpoint() == DEFAULT_TOKEN_ENDPOINT
    assert store.get_assessment_endpoint() == DEFAULT_ASSESSMENT_ENDPOINT
    assert store.get_voice() == DEFAULT_VOICE
    assert store.get_language() == "en-US"

    store.set_token_endpoint("https://example.test/api/speech/token")
    store.set_voice("en-US-GuyNeural")
    store.set_request_timeout_s(3)

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_token_endpoint() == "https://example.test/api/speech/token"
    assert reloaded.get_voice() == "en-US-GuyNeural"
    assert reloaded.get_request_timeout_s() == 3.0


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_token_endpoint() == DEFAULT_TOKEN_ENDPOINT
    assert store.get_request_timeout_s() == DEFAULT_TIMEOUT_S


def test_config_bad_timeout_falls_back(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text('{"request_timeout_s": "soon"}', encoding="utf-8")

    assert JsonConfigStore(path=path).get_request_timeout_s() == DEFAULT_TIMEOUT_S


def test_speech_credentials_from_env(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv("AZURE_SPEECH_KEY", "k")
    monkeypatch.setenv("AZURE_SPEECH_REGION", "westeurope")
    assert speech_credentials() == ("k", "westeurope")

    monkeypatch.delenv("AZURE_SPEECH_KEY")
    assert speech_credentials() == ("", "westeurope")
