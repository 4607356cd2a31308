"""Command-line entrypoint: pronunciation drills against the speech services."""

from __future__ import annotations

import argparse
import logging
import sys
from functools import partial
from pathlib import Path
from typing import Any, Optional

import requests

from config import JsonConfigStore
from errors import TokenFetchError
from models import AudioBlob, RecognitionState
from recognizer import AzureRecognizerAdapter
from recorder import AudioCaptureManager
from session_controller import RecognitionSession
from synthesizer import SpeechSynthesisSession
from token_client import SpeechTokenClient

logger = logging.getLogger(__name__)


def submit_assessment(
    endpoint: str,
    blob: AudioBlob,
    spoken_text: str,
    target_text: str,
    focus_sound: str,
    timeout_s: float,
) -> dict[str, Any]:
    """Post a recording to the assessment endpoint and return its JSON body."""
    response = requests.post(
        endpoint,
        files={"audio": ("recording", blob.data, blob.mime_type)},
        data={"text": spoken_text, "targetText": target_text, "focusSound": focus_sound},
        timeout=timeout_s,
    )
    body = response.json()
    if not response.ok:
        raise RuntimeError(body.get("error") or f"HTTP {response.status_code}")
    return body


class DrillRunner:
    def __init__(self, config_store: JsonConfigStore) -> None:
        self.config_store = config_store
        timeout_s = config_store.get_request_timeout_s()
        self.token_client = SpeechTokenClient(config_store.get_token_endpoint(), timeout_s)
        self.synthesis = SpeechSynthesisSession(
            self.token_client,
            voice=config_store.get_voice(),
            on_error=self._on_error,
        )
        self.recognition = RecognitionSession(
            self.token_client,
            recognizer_factory=partial(AzureRecognizerAdapter, language=config_store.get_language()),
            audio_capture=AudioCaptureManager(),
            on_state_change=self._on_state_change,
            on_text=self._on_text,
            on_error=self._on_error,
        )

    # ------------------------------------------------------------------
    # Callbacks (called from SDK threads)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: RecognitionState, to_state: RecognitionState) -> None:
        logger.debug("recognition %s -> %s", from_state.value, to_state.value)

    def _on_text(self, text: str) -> None:
        print(f"  ... {text}")

    def _on_error(self, code: str, message: str) -> None:
        print(f"  ! {code}: {message}", file=sys.stderr)

    # ------------------------------------------------------------------
    # Drill
    # ------------------------------------------------------------------

    def run(self, target_text: str, focus_sound: str, listen_first: bool = True) -> int:
        try:
            if listen_first:
                print(f"Listen: {target_text}")
                self.synthesis.speak(target_text)

            if not self.recognition.start_recognition():
                return 1
            input("Speak now, press Enter when done... ")
            self.recognition.stop_recognition()

            snapshot = self.recognition.snapshot()
            print(f"You said: {snapshot.recognized_text or '(nothing recognized)'}")
            if snapshot.audio_data is None or not snapshot.recognized_text:
                print("Nothing to assess.")
                return 1

            result = submit_assessment(
                self.config_store.get_assessment_endpoint(),
                snapshot.audio_data,
                snapshot.recognized_text,
                target_text,
                focus_sound,
                self.config_store.get_request_timeout_s(),
            )
            print(f"Score: {result.get('score')}")
            print(result.get("feedback", ""))
            for word in result.get("details", {}).get("words", []):
                marker = " <-" if word.get("errorType") else ""
                print(f"  {word.get('word'):<16} {word.get('score')}{marker}")
            return 0
        except (requests.RequestException, RuntimeError, ValueError) as exc:
            print(f"Assessment failed: {exc}", file=sys.stderr)
            return 1
        finally:
            self.recognition.dispose()
            self.synthesis.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="speaking", description="Spoken English practice drills")
    parser.add_argument("--log-level", default="WARNING")
    parser.add_argument("--config", default=None, help="path to config.json")
    sub = parser.add_subparsers(dest="command", required=True)

    drill = sub.add_parser("drill", help="listen, repeat and get a pronunciation score")
    drill.add_argument("target", help="text to practice")
    drill.add_argument("--focus", default="", help="sound to focus on, e.g. th")
    drill.add_argument("--no-listen", action="store_true", help="skip the spoken example")

    sub.add_parser("token", help="check the token endpoint")

    cfg = sub.add_parser("config", help="show or update settings")
    cfg.add_argument("--token-endpoint")
    cfg.add_argument("--assessment-endpoint")
    cfg.add_argument("--language")
    cfg.add_argument("--voice")
    cfg.add_argument("--timeout", type=float)
    return parser


def run_config(store: JsonConfigStore, args: argparse.Namespace) -> int:
    if args.token_endpoint:
        store.set_token_endpoint(args.token_endpoint)
    if args.assessment_endpoint:
        store.set_assessment_endpoint(args.assessment_endpoint)
    if args.language:
        store.set_language(args.language)
    if args.voice:
        store.set_voice(args.voice)
    if args.timeout is not None:
        store.set_request_timeout_s(args.timeout)
    print(f"token_endpoint      = {store.get_token_endpoint()}")
    print(f"assessment_endpoint = {store.get_assessment_endpoint()}")
    print(f"language            = {store.get_language()}")
    print(f"voice               = {store.get_voice()}")
    print(f"request_timeout_s   = {store.get_request_timeout_s()}")
    return 0


def run_token(store: JsonConfigStore) -> int:
    client = SpeechTokenClient(store.get_token_endpoint(), store.get_request_timeout_s())
    try:
        token = client.fetch_token()
    except TokenFetchError as exc:
        print(f"Token fetch failed: {exc}", file=sys.stderr)
        return 1
    print(f"Token OK for region {token.region}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = JsonConfigStore(Path(args.config) if args.config else None)
    if args.command == "config":
        return run_config(store, args)
    if args.command == "token":
        return run_token(store)
    return DrillRunner(store).run(args.target, args.focus, listen_first=not args.no_listen)


if __name__ == "__main__":
    raise SystemExit(main())
