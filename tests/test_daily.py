from datetime import date

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from scripture_engine.config import Settings
from scripture_engine.engine import ReadingEngine
from scripture_engine.errors import StoreUnavailable
from scripture_engine.services.sql_model import DailyAssignmentRow, ReadingPositionRow

from conftest import CORPUS_SIZE


def test_first_request_binds_current_position(reading):
    today = reading.get_today_assignment("alice", "bible")
    assert today.verse_index == 0
    assert today.verse == reading.get_verse_by_index("bible", 0)
    assert today.is_read is False
    assert today.is_restart is False
    assert today.is_fallback is False
    assert today.day == date(2024, 3, 10)


def test_repeated_requests_same_day_do_not_advance(reading):
    first = reading.get_today_assignment("alice", "bible")
    second = reading.get_today_assignment("alice", "bible")
    assert first.verse == second.verse
    assert reading.get_or_create_position("alice", "bible").current_index == 0


def test_binds_to_manually_navigated_position(reading):
    verse = reading.get_verse_by_index("bible", 6)
    reading.set_position("alice", "bible", 6, verse)
    assert reading.get_today_assignment("alice", "bible").verse == verse


def test_read_then_request_same_day_advances(reading):
    today = reading.get_today_assignment("alice", "bible")
    assert reading.mark_today_read("alice", "bible", today.verse.id) is True

    advanced = reading.get_today_assignment("alice", "bible")
    assert advanced.verse_index == 1
    assert advanced.verse == reading.get_verse_by_index("bible", 1)
    assert advanced.is_read is False
    assert reading.get_or_create_position("alice", "bible").current_index == 1


def test_read_yesterday_advances_next_day(reading, clock):
    verse = reading.get_verse_by_index("bible", 7)
    reading.set_position("alice", "bible", 7, verse)
    today = reading.get_today_assignment("alice", "bible")
    reading.mark_today_read("alice", "bible", today.verse.id)

    clock.advance(1)
    tomorrow = reading.get_today_assignment("alice", "bible")
    assert tomorrow.verse_index == 8
    assert tomorrow.verse.order_key == (2, 1, 1)
    assert tomorrow.day == date(2024, 3, 11)


def test_unread_yesterday_repeats_next_day(reading, clock):
    first = reading.get_today_assignment("alice", "bible")
    clock.advance(1)
    assert reading.get_today_assignment("alice", "bible").verse == first.verse


def test_end_of_corpus_wraps_with_restart(reading, clock):
    last = reading.get_verse_by_index("bible", CORPUS_SIZE - 1)
    reading.set_position("alice", "bible", CORPUS_SIZE - 1, last)

    today = reading.get_today_assignment("alice", "bible")
    assert today.verse == last
    reading.mark_today_read("alice", "bible", last.id)

    clock.advance(1)
    restarted = reading.get_today_assignment("alice", "bible")
    assert restarted.verse_index == 0
    assert restarted.is_restart is True
    assert restarted.verse == reading.get_verse_by_index("bible", 0)
    assert reading.get_or_create_position("alice", "bible").current_index == 0


def test_mark_today_read_records_event(reading):
    today = reading.get_today_assignment("alice", "bible")
    reading.mark_today_read("alice", "bible", today.verse.id)

    assert reading.has_read("alice", "bible", today.verse.id) is True
    assert reading.get_progress("alice", "bible").read_count == 1


def test_mark_today_read_requires_matching_assignment(reading):
    verse = reading.get_verse_by_index("bible", 3)
    assert reading.mark_today_read("alice", "bible", verse.id) is False

    reading.get_today_assignment("alice", "bible")
    assert reading.mark_today_read("alice", "bible", verse.id) is False


def test_mark_today_read_tolerates_event_log_failure(reading, services, seeded_engine, monkeypatch):
    today = reading.get_today_assignment("alice", "bible")

    def broken(user_id, verse, session):
        raise OperationalError("INSERT INTO read_events", {}, Exception("disk I/O error"))

    monkeypatch.setattr(services.tracker, "mark_read", broken)
    assert reading.mark_today_read("alice", "bible", today.verse.id) is True

    with Session(seeded_engine) as session:
        row = session.get(DailyAssignmentRow, ("alice", "bible", date(2024, 3, 10)))
        assert row.is_read is True
    assert reading.has_read("alice", "bible", today.verse.id) is False


def test_fallback_without_user(reading):
    today = reading.get_today_assignment(None, "bible")
    assert today.is_fallback is True
    assert today.verse.corpus == "bible"
    assert today.verse_index is None


def test_fallback_when_position_does_not_resolve(reading, seeded_engine):
    reading.get_or_create_position("alice", "bible")
    with Session(seeded_engine) as session:
        row = session.get(ReadingPositionRow, ("alice", "bible"))
        row.current_index = CORPUS_SIZE + 50
        session.add(row)
        session.commit()

    today = reading.get_today_assignment("alice", "bible")
    assert today.is_fallback is True
    with Session(seeded_engine) as session:
        assert session.get(DailyAssignmentRow, ("alice", "bible", date(2024, 3, 10))) is None


def test_empty_corpus_has_no_assignment(reading):
    assert reading.get_today_assignment("alice", "quran") is None


def test_daily_stats(reading, clock):
    for _ in range(3):
        today = reading.get_today_assignment("alice", "bible")
        reading.mark_today_read("alice", "bible", today.verse.id)
        clock.advance(1)
    # Fourth day assigned but not read yet.
    reading.get_today_assignment("alice", "bible")

    stats = reading.get_daily_stats("alice", "bible")
    assert stats.total_days_tracked == 4
    assert stats.total_days_read == 3
    assert stats.current_streak == 3
    assert stats.longest_streak == 3
    assert reading.get_or_create_position("alice", "bible").current_index == 3


def test_failed_advance_keeps_position_for_retry(reading, services, monkeypatch):
    today = reading.get_today_assignment("alice", "bible")
    reading.mark_today_read("alice", "bible", today.verse.id)

    bind = services.daily._bind
    attempts = []

    def flaky(*args):
        attempts.append(args)
        if len(attempts) == 1:
            raise OperationalError("INSERT INTO daily_assignments", {}, Exception("database is locked"))
        return bind(*args)

    monkeypatch.setattr(services.daily, "_bind", flaky)
    with pytest.raises(StoreUnavailable):
        reading.get_today_assignment("alice", "bible")
    assert reading.get_or_create_position("alice", "bible").current_index == 0

    retried = reading.get_today_assignment("alice", "bible")
    assert retried.verse_index == 1
    assert retried.verse == reading.get_verse_by_index("bible", 1)
    assert reading.get_or_create_position("alice", "bible").current_index == 1


def test_daily_stats_window_follows_settings(seeded_engine, clock):
    reading = ReadingEngine(seeded_engine, settings=Settings(streak_window=2), clock=clock)
    for _ in range(3):
        today = reading.get_today_assignment("alice", "bible")
        reading.mark_today_read("alice", "bible", today.verse.id)
        clock.advance(1)

    stats = reading.get_daily_stats("alice", "bible")
    assert stats.total_days_tracked == 2
    assert stats.total_days_read == 2
