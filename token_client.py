"""Client for the trusted speech token endpoint."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from config import DEFAULT_TIMEOUT_S
from errors import TokenFetchError
from models import SpeechToken

logger = logging.getLogger(__name__)


class SpeechTokenClient:
    """Fetches a short-lived ``{token, region}`` pair; never cached."""

    def __init__(
        self,
        endpoint: str,
        request_timeout_s: float = DEFAULT_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._endpoint = endpoint
        self._request_timeout_s = request_timeout_s
        self._session = session or requests.Session()

    def fetch_token(self) -> SpeechToken:
        try:
            response = self._session.get(self._endpoint, timeout=self._request_timeout_s)
        except requests.RequestException as exc:
            logger.error("token endpoint unreachable: %s", exc)
            raise TokenFetchError(f"Token endpoint unreachable: {exc}") from exc

        if not response.ok:
            raise TokenFetchError(
                f"Failed to get token: {response.status_code} {response.reason}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise TokenFetchError("Token endpoint returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise TokenFetchError("Token endpoint returned invalid JSON")
        if data.get("error"):
            raise TokenFetchError(str(data["error"]))
        token = str(data.get("token") or "")
        region = str(data.get("region") or "")
        if not token or not region:
            raise TokenFetchError("Token endpoint returned incomplete data")
        return SpeechToken(token=token, region=region)
