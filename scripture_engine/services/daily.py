"""
Verse of the day.

Per user and calendar day an assignment moves NoAssignmentToday -> Unread ->
Read. A new day always starts without an assignment. Asking for today's verse
after it was read advances the user's reading position by one verse and
binds a fresh Unread assignment, wrapping to index 0 at the end of the corpus.
"""
import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from scripture_engine.config import LocalClock
from scripture_engine.errors import VerseNotFound
from scripture_engine.schema import ReadingPosition, TodayAssignment, Verse
from .cursor import VerseCursor
from .positions import ReadingPositionStore
from .progress import ProgressTracker
from .sql_model import DailyAssignmentRow

logger = logging.getLogger(__name__)


class DailyScheduler:
    def __init__(self, cursor: VerseCursor, positions: ReadingPositionStore,
                 tracker: ProgressTracker, clock: LocalClock):
        self.cursor = cursor
        self.positions = positions
        self.tracker = tracker
        self.clock = clock

    @property
    def corpus(self) -> str:
        return self.cursor.corpus.key

    def _assignment(self, user_id: str, day: date, session: Session) -> DailyAssignmentRow | None:
        return session.get(DailyAssignmentRow, (user_id, self.corpus, day))

    def _latest_before(self, user_id: str, day: date, session: Session) -> DailyAssignmentRow | None:
        stmt = (select(DailyAssignmentRow)
                .where(DailyAssignmentRow.user_id == user_id)
                .where(DailyAssignmentRow.corpus == self.corpus)
                .where(DailyAssignmentRow.day < day)
                .order_by(DailyAssignmentRow.day.desc())
                .limit(1))
        return session.exec(stmt).first()

    def _bind(self, user_id: str, day: date, index: int, verse: Verse, is_restart: bool,
              session: Session) -> DailyAssignmentRow:
        now = self.clock.now()
        row = self._assignment(user_id, day, session)
        if row is None:
            row = DailyAssignmentRow(user_id=user_id, corpus=self.corpus, day=day, verse_id=verse.id,
                                     verse_index=index, section_number=verse.section_number,
                                     section_name=verse.section_name, chapter=verse.chapter,
                                     created_at=now, updated_at=now)
        row.verse_id = verse.id
        row.verse_index = index
        row.section_number = verse.section_number
        row.section_name = verse.section_name
        row.chapter = verse.chapter
        row.is_read = False
        row.is_restart = is_restart
        row.read_at = None
        row.created_at = now
        row.updated_at = now
        session.add(row)
        session.commit()
        session.refresh(row)
        return row

    @staticmethod
    def _to_assignment(row: DailyAssignmentRow, verse: Verse) -> TodayAssignment:
        return TodayAssignment(
            verse=verse,
            day=row.day,
            verse_index=row.verse_index,
            is_read=row.is_read,
            is_restart=row.is_restart,
        )

    def _fallback(self, session: Session) -> TodayAssignment | None:
        verse = self.cursor.random(session)
        if verse is None:
            logger.warning("daily_fallback_empty_corpus corpus=%s", self.corpus)
            return None
        logger.info("daily_fallback corpus=%s verse=%s", self.corpus, verse.id)
        return TodayAssignment(verse=verse, day=self.clock.today(), is_fallback=True)

    def _advance(self, user_id: str, day: date, previous: DailyAssignmentRow, position: ReadingPosition,
                 session: Session) -> TodayAssignment | None:
        total = self.cursor.count(session)
        next_index = position.current_index + 1
        is_restart = next_index >= total
        verse = None

        try:
            if is_restart:
                next_index = 0
                verse = self.cursor.by_index(0, session)
            else:
                if previous.verse_index == position.current_index:
                    bound = self.cursor.by_id(previous.verse_id, session)
                    if bound is not None:
                        verse = self.cursor.successor(bound, session)
                if verse is None:
                    verse = self.cursor.by_index(next_index, session)
        except VerseNotFound:
            logger.warning("daily_advance_unresolved user=%s corpus=%s index=%s", user_id, self.corpus, next_index)
            return self._fallback(session)

        if is_restart:
            logger.info("corpus_completed user=%s corpus=%s restarting", user_id, self.corpus)
        # Position and assignment are committed together by _bind.
        self.positions.stage(user_id, next_index, verse, session)
        row = self._bind(user_id, day, next_index, verse, is_restart, session)
        logger.info("daily_advance user=%s corpus=%s index=%s verse=%s", user_id, self.corpus, next_index, verse.id)
        return self._to_assignment(row, verse)

    def get_today(self, user_id: str | None, session: Session) -> TodayAssignment | None:
        """
        Return today's verse for the user, creating or advancing the assignment
        as needed. Repeated calls while it is unread return the same verse.

        Falls back to a random, unpersisted verse (is_fallback=True) when there
        is no user or the position does not resolve to a record. Returns None
        only when the corpus is empty.
        """
        if not user_id:
            return self._fallback(session)

        today = self.clock.today()
        row = self._assignment(user_id, today, session)

        if row is None:
            position = self.positions.get_or_create(user_id, session)
            previous = self._latest_before(user_id, today, session)
            if previous is not None and previous.is_read and previous.verse_index == position.current_index:
                return self._advance(user_id, today, previous, position, session)

            try:
                verse = self.cursor.by_index(position.current_index, session)
            except VerseNotFound:
                logger.warning("daily_position_unresolved user=%s corpus=%s index=%s",
                               user_id, self.corpus, position.current_index)
                return self._fallback(session)

            row = self._bind(user_id, today, position.current_index, verse, False, session)
            logger.info("daily_created user=%s corpus=%s index=%s", user_id, self.corpus, row.verse_index)
            return self._to_assignment(row, verse)

        if not row.is_read:
            verse = self.cursor.by_id(row.verse_id, session)
            if verse is None:
                try:
                    verse = self.cursor.by_index(row.verse_index, session)
                except VerseNotFound:
                    return self._fallback(session)
            return self._to_assignment(row, verse)

        position = self.positions.get_or_create(user_id, session)
        return self._advance(user_id, today, row, position, session)

    def mark_today_read(self, user_id: str, verse_id: int, session: Session) -> bool:
        """
        Mark today's assignment read, then record the read event.

        The assignment write is authoritative and its failures propagate. The
        event log and position sync that follow are best-effort.
        """
        today = self.clock.today()
        row = self._assignment(user_id, today, session)
        if row is None:
            logger.warning("daily_mark_without_assignment user=%s corpus=%s", user_id, self.corpus)
            return False
        if row.verse_id != verse_id:
            logger.warning("daily_mark_mismatch user=%s corpus=%s assigned=%s given=%s",
                           user_id, self.corpus, row.verse_id, verse_id)
            return False
        if row.is_read:
            return True

        index = row.verse_index
        now = self.clock.now()
        row.is_read = True
        row.read_at = now
        row.updated_at = now
        session.add(row)
        session.commit()
        logger.info("daily_marked_read user=%s corpus=%s verse=%s", user_id, self.corpus, verse_id)

        try:
            verse = self.cursor.by_id(verse_id, session)
            if verse is None:
                logger.warning("daily_mark_verse_missing corpus=%s verse=%s", self.corpus, verse_id)
                return True
            self.tracker.mark_read(user_id, verse, session)
            position = self.positions.get_or_create(user_id, session)
            if position.current_index != index or position.section_number != verse.section_number \
                    or position.chapter != verse.chapter:
                self.positions.set(user_id, index, verse, session)
        except SQLAlchemyError:
            session.rollback()
            logger.warning("daily_mark_secondary_failed user=%s corpus=%s verse=%s",
                           user_id, self.corpus, verse_id, exc_info=True)
        return True
