"""Speaking record store and per-user practice statistics."""

from __future__ import annotations

import math
import threading
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

from models import RecordKind, SpeakingRecord

RECENT_LIMIT = 10
PER_KIND_LIMIT = 100
PROGRESS_DAYS = 7


class InMemoryRecordStore:
    def __init__(self) -> None:
        self._records: list[SpeakingRecord] = []
        self._lock = threading.Lock()

    def add(
        self,
        user_id: str,
        kind: RecordKind,
        duration: float,
        created_at: Optional[datetime] = None,
        topic_title: Optional[str] = None,
        question_text: Optional[str] = None,
    ) -> SpeakingRecord:
        record = SpeakingRecord(
            id=uuid.uuid4().hex,
            user_id=user_id,
            kind=kind,
            duration=duration,
            created_at=created_at or datetime.now(),
            topic_title=topic_title,
            question_text=question_text,
        )
        with self._lock:
            self._records.append(record)
        return record

    def list_for_user(self, user_id: str) -> list[SpeakingRecord]:
        with self._lock:
            return [r for r in self._records if r.user_id == user_id]


def practice_streak(records: Iterable[SpeakingRecord], today: date) -> int:
    """Consecutive days, ending today, with at least one record."""
    days = {r.created_at.date() for r in records}
    streak = 0
    day = today
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def compute_speaking_stats(records: Iterable[SpeakingRecord], today: Optional[date] = None) -> dict[str, Any]:
    today = today or date.today()
    all_records = list(records)
    total = len(all_records)

    by_kind: dict[RecordKind, list[SpeakingRecord]] = {kind: [] for kind in RecordKind}
    for record in sorted(all_records, key=lambda r: r.created_at, reverse=True):
        bucket = by_kind[RecordKind(record.kind)]
        if len(bucket) < PER_KIND_LIMIT:
            bucket.append(record)
    recent = sorted(
        (r for bucket in by_kind.values() for r in bucket),
        key=lambda r: r.created_at,
        reverse=True,
    )

    month_start = today.replace(day=1)
    progress = []
    for offset in range(PROGRESS_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        count = sum(1 for r in recent if r.created_at.date() == day)
        progress.append({"date": f"{day.month}/{day.day}", "count": count})

    pronunciation = len(by_kind[RecordKind.PRONUNCIATION])
    conversation = len(by_kind[RecordKind.CONVERSATION])
    reflex = len(by_kind[RecordKind.REFLEX])
    return {
        "totalSpeakingCount": total,
        "practiceStreak": practice_streak(recent, today),
        "exercisesThisMonth": sum(1 for r in recent if r.created_at.date() >= month_start),
        "pronunciationCount": pronunciation,
        "conversationCount": conversation,
        "reflexCount": reflex,
        "recentRecords": [_record_summary(r) for r in recent[:RECENT_LIMIT]],
        "progressOverTime": progress,
        "skillsBreakdown": [
            {"name": "Pronunciation", "value": pronunciation},
            {"name": "Conversation", "value": conversation},
            {"name": "Reflex Training", "value": reflex},
            {"name": "Fluency", "value": math.floor(total * 0.7)},
            {"name": "Comprehension", "value": math.floor(total * 0.8)},
        ],
    }


def _record_summary(record: SpeakingRecord) -> dict[str, Any]:
    kind = RecordKind(record.kind)
    return {
        "id": record.id,
        "type": kind.value,
        "duration": record.duration,
        "date": record.created_at.isoformat(),
        "topicTitle": record.topic_title if kind == RecordKind.CONVERSATION else None,
        "questionText": record.question_text if kind == RecordKind.REFLEX else None,
    }
