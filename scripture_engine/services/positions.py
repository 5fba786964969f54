import logging

from sqlmodel import Session

from scripture_engine.config import LocalClock
from scripture_engine.errors import VerseNotFound
from scripture_engine.schema import ReadingPosition, Verse
from .cursor import VerseCursor
from .sql_model import ReadingPositionRow

logger = logging.getLogger(__name__)


def _to_position(row: ReadingPositionRow) -> ReadingPosition:
    return ReadingPosition(
        user_id=row.user_id,
        corpus=row.corpus,
        current_index=row.current_index,
        section_number=row.section_number,
        section_name=row.section_name,
        chapter=row.chapter,
        last_visited_at=row.last_visited_at,
        percent_complete=row.percent_complete,
    )


class ReadingPositionStore:
    """
    One row per (user, corpus) holding where the user left off.

    Only the current position is kept. Every write replaces all fields of the
    row at once.
    """

    def __init__(self, cursor: VerseCursor, clock: LocalClock):
        self.cursor = cursor
        self.clock = clock

    @property
    def corpus(self) -> str:
        return self.cursor.corpus.key

    def _percent(self, index: int, session: Session) -> float:
        total = self.cursor.count(session)
        return (index / total * 100) if total else 0.0

    def _stage(self, user_id: str, index: int, section_number: int, section_name: str,
               chapter: int, session: Session) -> ReadingPositionRow:
        percent = self._percent(index, session)
        now = self.clock.now()
        row = session.get(ReadingPositionRow, (user_id, self.corpus))
        if row is None:
            row = ReadingPositionRow(user_id=user_id, corpus=self.corpus, last_visited_at=now)
        row.current_index = index
        row.section_number = section_number
        row.section_name = section_name
        row.chapter = chapter
        row.last_visited_at = now
        row.percent_complete = percent
        session.add(row)
        return row

    def _write(self, user_id: str, index: int, section_number: int, section_name: str,
               chapter: int, session: Session) -> ReadingPositionRow:
        row = self._stage(user_id, index, section_number, section_name, chapter, session)
        session.commit()
        session.refresh(row)
        return row

    def _write_default(self, user_id: str, session: Session) -> ReadingPositionRow:
        try:
            first = self.cursor.by_index(0, session)
        except VerseNotFound:
            corpus = self.cursor.corpus
            logger.info("position_default_without_records corpus=%s", self.corpus)
            return self._write(user_id, 0, corpus.first_section_number, corpus.first_section_name, 1, session)
        return self._write(user_id, 0, first.section_number, first.section_name, first.chapter, session)

    def get_or_create(self, user_id: str, session: Session) -> ReadingPosition:
        """Return the stored position, persisting the index-0 default on first access."""
        row = session.get(ReadingPositionRow, (user_id, self.corpus))
        if row is None:
            logger.info("position_created user=%s corpus=%s", user_id, self.corpus)
            row = self._write_default(user_id, session)
        return _to_position(row)

    def set(self, user_id: str, index: int, verse: Verse, session: Session) -> ReadingPosition:
        if index < 0:
            raise VerseNotFound(self.corpus, index)
        row = self._write(user_id, index, verse.section_number, verse.section_name, verse.chapter, session)
        logger.debug("position_set user=%s corpus=%s index=%s", user_id, self.corpus, index)
        return _to_position(row)

    def reset(self, user_id: str, session: Session) -> ReadingPosition:
        logger.info("position_reset user=%s corpus=%s", user_id, self.corpus)
        return _to_position(self._write_default(user_id, session))

    def stage(self, user_id: str, index: int, verse: Verse, session: Session) -> None:
        """Apply a position change without committing; the caller's commit persists it."""
        if index < 0:
            raise VerseNotFound(self.corpus, index)
        self._stage(user_id, index, verse.section_number, verse.section_name, verse.chapter, session)
