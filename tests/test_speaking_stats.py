from __future__ import annotations

from datetime import date, datetime, timedelta

from models import RecordKind
from speaking_stats import InMemoryRecordStore, compute_speaking_stats, practice_streak

TODAY = date(2026, 10, 18)


def _at(days_ago: int, hour: int = 10) -> datetime:
    day = TODAY - timedelta(days=days_ago)
    return datetime(day.year, day.month, day.day, hour)


def _store() -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    store.add("u1", RecordKind.PRONUNCIATION, 30, created_at=_at(0))
    store.add("u1", RecordKind.CONVERSATION, 120, created_at=_at(1), topic_title="Travel")
    store.add("u1", RecordKind.REFLEX, 15, created_at=_at(2), question_text="What's your name?")
    store.add("u1", RecordKind.PRONUNCIATION, 20, created_at=_at(10))
    store.add("u2", RecordKind.REFLEX, 10, created_at=_at(0))
    return store


def test_store_filters_by_user() -> None:
    store = _store()
    assert len(store.list_for_user("u1")) == 4
    assert len(store.list_for_user("u2")) == 1
    assert store.list_for_user("nobody") == []


def test_streak_counts_back_from_today() -> None:
    records = _store().list_for_user("u1")
    assert practice_streak(records, TODAY) == 3
    assert practice_streak(records, TODAY + timedelta(days=1)) == 0


def test_compute_stats() -> None:
    stats = compute_speaking_stats(_store().list_for_user("u1"), today=TODAY)

    assert stats["totalSpeakingCount"] == 4
    assert stats["practiceStreak"] == 3
    assert stats["exercisesThisMonth"] == 4
    assert stats["pronunciationCount"] == 2
    assert stats["conversationCount"] == 1
    assert stats["reflexCount"] == 1


def test_recent_records_are_newest_first() -> None:
    stats = compute_speaking_stats(_store().list_for_user("u1"), today=TODAY)
    recent = stats["recentRecords"]

    assert [r["type"] for r in recent] == ["pronunciation", "conversation", "reflex", "pronunciation"]
    assert recent[0]["topicTitle"] is None
    assert recent[1]["topicTitle"] == "Travel"
    assert recent[2]["questionText"] == "What's your name?"
    assert recent[1]["questionText"] is None


def test_progress_over_last_seven_days() -> None:
    stats = compute_speaking_stats(_store().list_for_user("u1"), today=TODAY)
    progress = stats["progressOverTime"]

    assert [p["date"] for p in progress] == ["10/12", "10/13", "10/14", "10/15", "10/16", "10/17", "10/18"]
    assert [p["count"] for p in progress] == [0, 0, 0, 0, 1, 1, 1]


def test_skills_breakdown() -> None:
    stats = compute_speaking_stats(_store().list_for_user("u1"), today=TODAY)
    skills = {s["name"]: s["value"] for s in stats["skillsBreakdown"]}

    assert skills == {
        "Pronunciation": 2,
        "Conversation": 1,
        "Reflex Training": 1,
        "Fluency": 2,
        "Comprehension": 3,
    }


def test_per_kind_counts_are_capped() -> None:
    store = InMemoryRecordStore()
    for i in range(105):
        store.add("u1", RecordKind.PRONUNCIATION, 5, created_at=_at(0) - timedelta(minutes=i))

    stats = compute_speaking_stats(store.list_for_user("u1"), today=TODAY)

    assert stats["totalSpeakingCount"] == 105
    assert stats["pronunciationCount"] == 100
    assert len(stats["recentRecords"]) == 10


def test_empty_history() -> None:
    stats = compute_speaking_stats([], today=TODAY)
    assert stats["totalSpeakingCount"] == 0
    assert stats["practiceStreak"] == 0
    assert stats["recentRecords"] == []
    assert all(p["count"] == 0 for p in stats["progressOverTime"])
