"""
Read log, progress and streaks.

The set of distinct verse ids in read_events is the ground truth for how many
verses a user has read. read_counters is a legacy cache: it is only consulted
when there are no events and is corrected on read when it drifts.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Iterable

from sqlalchemy import distinct, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from scripture_engine.config import DEFAULT_STREAK_WINDOW, LocalClock
from scripture_engine.schema import DailyStats, ProgressSummary, ReadEvent, Verse
from .cursor import VerseCursor
from .sql_model import DailyAssignmentRow, ReadCounterRow, ReadEventRow, ReadingPositionRow

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def group_days(timestamps: Iterable[datetime]) -> set[date]:
    return {ts.date() for ts in timestamps if ts is not None}


def current_streak(days: set[date], today: date) -> int:
    # A streak is still in progress when today has no event yet.
    if today in days:
        day = today
    elif today - ONE_DAY in days:
        day = today - ONE_DAY
    else:
        return 0

    streak = 0
    while day in days:
        streak += 1
        day -= ONE_DAY
    return streak


def longest_streak(days: set[date]) -> int:
    longest = 0
    run = 0
    previous = None
    for day in sorted(days):
        if previous is not None and day - previous == ONE_DAY:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return longest


class ProgressTracker:
    def __init__(self, cursor: VerseCursor, clock: LocalClock, streak_window: int = DEFAULT_STREAK_WINDOW):
        self.cursor = cursor
        self.clock = clock
        self.streak_window = streak_window

    @property
    def corpus(self) -> str:
        return self.cursor.corpus.key

    def has_read(self, user_id: str, verse_id: int, session: Session) -> bool:
        stmt = (select(ReadEventRow.id)
                .where(ReadEventRow.user_id == user_id)
                .where(ReadEventRow.corpus == self.corpus)
                .where(ReadEventRow.verse_id == verse_id)
                .limit(1))
        return session.exec(stmt).first() is not None

    def mark_read(self, user_id: str, verse: Verse, session: Session) -> bool:
        """
        Append a read event the first time a user reads a verse.

        Returns False when the verse was already read. The cached counter is
        bumped afterwards on a best-effort basis.
        """
        if self.has_read(user_id, verse.id, session):
            logger.info("mark_read_duplicate user=%s corpus=%s verse=%s", user_id, self.corpus, verse.id)
            return False

        read_at = self.clock.now()
        session.add(ReadEventRow(user_id=user_id, corpus=self.corpus, verse_id=verse.id, read_at=read_at))
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.info("mark_read_duplicate user=%s corpus=%s verse=%s", user_id, self.corpus, verse.id)
            return False

        logger.info("mark_read user=%s corpus=%s verse=%s", user_id, self.corpus, verse.id)
        self._bump_counter(user_id, read_at, session)
        return True

    def _bump_counter(self, user_id: str, read_at: datetime, session: Session) -> None:
        try:
            counter = session.get(ReadCounterRow, (user_id, self.corpus))
            if counter is None:
                counter = ReadCounterRow(user_id=user_id, corpus=self.corpus)
            counter.read_count += 1
            counter.last_read_at = read_at
            session.add(counter)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.warning("counter_bump_failed user=%s corpus=%s", user_id, self.corpus, exc_info=True)

    def read_history(self, user_id: str, session: Session, start: datetime | None = None,
                     end: datetime | None = None) -> list[ReadEvent]:
        stmt = (select(ReadEventRow)
                .where(ReadEventRow.user_id == user_id)
                .where(ReadEventRow.corpus == self.corpus))
        if start is not None:
            stmt = stmt.where(ReadEventRow.read_at >= start)
        if end is not None:
            stmt = stmt.where(ReadEventRow.read_at <= end)
        stmt = stmt.order_by(ReadEventRow.read_at.desc())

        return [
            ReadEvent(user_id=row.user_id, corpus=row.corpus, verse_id=row.verse_id, read_at=row.read_at)
            for row in session.exec(stmt).all()
        ]

    def _distinct_read_count(self, user_id: str, session: Session) -> int:
        stmt = (select(func.count(distinct(ReadEventRow.verse_id)))
                .where(ReadEventRow.user_id == user_id)
                .where(ReadEventRow.corpus == self.corpus))
        return int(session.exec(stmt).one())

    def _recent_reads(self, user_id: str, session: Session) -> list[datetime]:
        stmt = (select(ReadEventRow.read_at)
                .where(ReadEventRow.user_id == user_id)
                .where(ReadEventRow.corpus == self.corpus)
                .order_by(ReadEventRow.read_at.desc())
                .limit(self.streak_window))
        return list(session.exec(stmt).all())

    def _reconcile(self, user_id: str, counter: ReadCounterRow, actual: int, session: Session) -> None:
        logger.info("counter_reconcile user=%s corpus=%s cached=%s actual=%s",
                    user_id, self.corpus, counter.read_count, actual)
        try:
            counter.read_count = actual
            session.add(counter)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.warning("counter_reconcile_failed user=%s corpus=%s", user_id, self.corpus, exc_info=True)

    def progress(self, user_id: str, session: Session) -> ProgressSummary:
        actual = self._distinct_read_count(user_id, session)
        counter = session.get(ReadCounterRow, (user_id, self.corpus))

        read_count = actual
        if actual == 0 and counter is not None:
            read_count = counter.read_count
        elif counter is not None and counter.read_count != actual:
            self._reconcile(user_id, counter, actual, session)

        recent = self._recent_reads(user_id, session)
        days = group_days(recent)
        last_read = recent[0] if recent else (counter.last_read_at if counter is not None else None)

        summary = dict(
            read_count=read_count,
            total_count=self.cursor.count(session),
            current_streak=current_streak(days, self.clock.today()),
            longest_streak=longest_streak(days),
            last_read_date=last_read,
        )

        position = session.get(ReadingPositionRow, (user_id, self.corpus))
        if position is not None:
            summary.update(
                current_index=position.current_index,
                section_number=position.section_number,
                section_name=position.section_name,
                chapter=position.chapter,
                percent_complete=position.percent_complete,
            )
        return ProgressSummary(**summary)

    def daily_stats(self, user_id: str, session: Session, window: int | None = None) -> DailyStats:
        window = window or self.streak_window
        stmt = (select(DailyAssignmentRow)
                .where(DailyAssignmentRow.user_id == user_id)
                .where(DailyAssignmentRow.corpus == self.corpus)
                .order_by(DailyAssignmentRow.day.desc())
                .limit(window))
        assignments = session.exec(stmt).all()
        read_days = {a.day for a in assignments if a.is_read}

        return DailyStats(
            current_streak=current_streak(read_days, self.clock.today()),
            longest_streak=longest_streak(read_days),
            total_days_read=len(read_days),
            total_days_tracked=len(assignments),
        )
