from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from errors import TokenFetchError
from token_client import SpeechTokenClient

ENDPOINT = "http://127.0.0.1:8000/api/speech/token"


def _response(status: int = 200, body=None, json_error: Exception | None = None) -> MagicMock:  # noqa: ANN001
    response = MagicMock()
    response.ok = 200 <= status < 400
    response.status_code = status
    response.reason = "OK" if response.ok else "Internal Server Error"
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = body
    return response


def _client(response: MagicMock | None = None, error: Exception | None = None) -> tuple[SpeechTokenClient, MagicMock]:
    session = MagicMock()
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value = response
    return SpeechTokenClient(ENDPOINT, request_timeout_s=2.5, session=session), session


def test_fetch_token_success() -> None:
    client, session = _client(_response(body={"token": "abc", "region": "westeurope"}))

    token = client.fetch_token()

    assert token.token == "abc"
    assert token.region == "westeurope"
    session.get.assert_called_once_with(ENDPOINT, timeout=2.5)


def test_token_is_fetched_every_time() -> None:
    client, session = _client(_response(body={"token": "abc", "region": "westeurope"}))
    client.fetch_token()
    client.fetch_token()
    assert session.get.call_count == 2


def test_http_error() -> None:
    client, _ = _client(_response(status=500, body={"error": "boom"}))
    with pytest.raises(TokenFetchError, match="500"):
        client.fetch_token()


def test_network_error() -> None:
    client, _ = _client(error=requests.ConnectionError("refused"))
    with pytest.raises(TokenFetchError, match="unreachable"):
        client.fetch_token()


def test_timeout() -> None:
    client, _ = _client(error=requests.Timeout("read timed out"))
    with pytest.raises(TokenFetchError):
        client.fetch_token()


def test_invalid_json() -> None:
    client, _ = _client(_response(json_error=ValueError("Expecting value")))
    with pytest.raises(TokenFetchError, match="invalid JSON"):
        client.fetch_token()


@pytest.mark.parametrize(
    "body",
    [
        ["abc", "westeurope"],
        {"token": "abc"},
        {"region": "westeurope"},
        {"token": "", "region": "westeurope"},
    ],
)
def test_incomplete_payload(body) -> None:  # noqa: ANN001
    client, _ = _client(_response(body=body))
    with pytest.raises(TokenFetchError):
        client.fetch_token()


def test_error_field_in_body() -> None:
    client, _ = _client(_response(body={"error": "Speech service credentials are not configured"}))
    with pytest.raises(TokenFetchError, match="credentials"):
        client.fetch_token()
