"""HTTP endpoints backing the speech sessions.

Run with any ASGI server, e.g. ``uvicorn server:app``.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, File, Form, Header, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from assessment import PronunciationAssessor
from errors import AssessmentError, CredentialsMissingError, SpeechSessionError
from models import RecordKind
from speaking_stats import InMemoryRecordStore, compute_speaking_stats
from speech_service import AzureSpeechService
from ttl_cache import MEDIUM_TTL_S, TTLCache, cache_key

logger = logging.getLogger(__name__)

STATS_KIND = "speaking-stats"


class SynthesizeRequest(BaseModel):
    text: str = ""


class SpeakingRecordRequest(BaseModel):
    kind: RecordKind
    duration: float = Field(default=0.0, ge=0)
    topic_title: Optional[str] = None
    question_text: Optional[str] = None


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_app(
    speech_service: Optional[AzureSpeechService] = None,
    assessor: Optional[PronunciationAssessor] = None,
    records: Optional[InMemoryRecordStore] = None,
    cache: Optional[TTLCache] = None,
) -> FastAPI:
    speech_service = speech_service or AzureSpeechService.from_env()
    assessor = assessor or PronunciationAssessor.from_env()
    records = records or InMemoryRecordStore()
    cache = cache if cache is not None else TTLCache(default_ttl_s=MEDIUM_TTL_S)

    app = FastAPI(title="SpeaKing Speech API")

    @app.get("/api/speech/token")
    def speech_token():
        try:
            token = speech_service.issue_token()
        except SpeechSessionError as exc:
            logger.error("error generating speech token: %s", exc)
            return _error(exc.message, 500)
        return {"token": token.token, "region": token.region}

    @app.post("/api/speech/synthesize")
    def synthesize(request: SynthesizeRequest):
        if not request.text:
            return _error("Text is required", 400)
        try:
            audio = speech_service.synthesize(request.text)
        except SpeechSessionError as exc:
            logger.error("error in speech synthesis: %s", exc)
            return _error(exc.message, 500)
        return Response(content=audio, media_type="audio/wav")

    @app.post("/api/evaluate-pronunciation")
    async def evaluate_pronunciation(
        audio: Optional[UploadFile] = File(None),
        text: str = Form(""),
        target_text: str = Form("", alias="targetText"),
        focus_sound: str = Form("", alias="focusSound"),
    ):
        if audio is None or not text or not target_text:
            return _error("Missing required fields", 400)

        data = await audio.read()
        try:
            result = await run_in_threadpool(
                assessor.assess,
                data,
                audio.content_type or "audio/wav",
                text,
                target_text,
                focus_sound,
            )
        except CredentialsMissingError as exc:
            return _error(exc.message, 500)
        except AssessmentError as exc:
            return _error(exc.message, exc.status_code)
        except Exception as exc:
            logger.exception("error in pronunciation assessment")
            return JSONResponse({"success": False, "error": str(exc)}, status_code=500)
        return result.to_response()

    @app.get("/api/speaking-stats")
    def speaking_stats(x_user_id: Optional[str] = Header(None)):
        if not x_user_id:
            return _error("Unauthorized", 401)

        key = cache_key(x_user_id, STATS_KIND)
        cached = cache.get(key)
        if cached is not None:
            return {"success": True, "data": cached, "cached": True}

        try:
            stats = compute_speaking_stats(records.list_for_user(x_user_id))
        except Exception:
            logger.exception("error fetching speaking stats")
            return JSONResponse(
                {"success": False, "error": {"message": "Failed to fetch speaking statistics"}},
                status_code=500,
            )
        cache.set(key, stats, MEDIUM_TTL_S)
        return {"success": True, "data": stats, "cached": False}

    @app.post("/api/speaking-records", status_code=201)
    def add_speaking_record(request: SpeakingRecordRequest, x_user_id: Optional[str] = Header(None)):
        if not x_user_id:
            return _error("Unauthorized", 401)
        record = records.add(
            user_id=x_user_id,
            kind=request.kind,
            duration=request.duration,
            topic_title=request.topic_title,
            question_text=request.question_text,
        )
        cache.delete_prefix(f"{x_user_id}:")
        return {"success": True, "id": record.id}

    return app


app = create_app()
