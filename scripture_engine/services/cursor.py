"""
Sequential traversal over a corpus that is never loaded whole.

The store only offers ordered range queries that resume after a cursor, so
random access by global index is a forward walk in fixed-size batches, while
next/previous are single-query operations. Batches are issued one after the
other because each one starts from the last record of the previous batch.
"""
import bisect
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from scripture_engine.config import DEFAULT_PAGE_SIZE, DEFAULT_PREDECESSOR_WINDOW
from scripture_engine.corpora import Corpus
from scripture_engine.errors import VerseNotFound
from scripture_engine.schema import Verse
from .sql_service import (
    count_before,
    count_verses,
    cursor_key,
    first_verses,
    get_verse_row,
    get_verse_row_by_id,
    random_verse_row,
    row_to_verse,
    verses_after,
    verses_before,
    verses_before_section,
)

logger = logging.getLogger(__name__)


class VerseCursor:
    def __init__(self, corpus: Corpus, page_size: int = DEFAULT_PAGE_SIZE,
                 predecessor_window: int = DEFAULT_PREDECESSOR_WINDOW):
        self.corpus = corpus
        self.page_size = page_size
        self.predecessor_window = predecessor_window
        self._count: int | None = None
        # global index -> verse seen at that index; the corpus is immutable,
        # so any record we have already walked past is a valid resume point.
        self._checkpoints: dict[int, Verse] = {}
        self._checkpoint_indexes: list[int] = []

    def invalidate(self) -> None:
        self._count = None
        self._checkpoints.clear()
        self._checkpoint_indexes.clear()

    def _remember(self, index: int, verse: Verse) -> None:
        if index in self._checkpoints:
            return
        self._checkpoints[index] = verse
        bisect.insort(self._checkpoint_indexes, index)

    def _nearest_checkpoint(self, index: int) -> tuple[int, Verse | None]:
        pos = bisect.bisect_right(self._checkpoint_indexes, index)
        if pos == 0:
            return -1, None
        found = self._checkpoint_indexes[pos - 1]
        return found, self._checkpoints[found]

    def by_index(self, index: int, session: Session) -> Verse:
        """
        Return the verse ranked `index` under (section, chapter, verse) order.

        Raises VerseNotFound when the index is negative or past the end of the
        corpus (including an empty corpus).
        """
        if index < 0:
            raise VerseNotFound(self.corpus.key, index)

        checkpoint_index, checkpoint = self._nearest_checkpoint(index)
        if checkpoint is not None and checkpoint_index == index:
            return checkpoint

        counted = checkpoint_index + 1
        key = cursor_key(checkpoint) if checkpoint is not None else None
        queries = 0

        while True:
            remaining = index - counted
            limit = min(self.page_size, remaining + 1)
            if key is None:
                rows = first_verses(self.corpus.key, limit, session)
            else:
                rows = verses_after(self.corpus.key, key, limit, session)
            queries += 1

            if not rows:
                logger.info("verse_by_index_out_of_range corpus=%s index=%s counted=%s",
                            self.corpus.key, index, counted)
                raise VerseNotFound(self.corpus.key, index)

            if counted + len(rows) > index:
                target = row_to_verse(rows[index - counted])
                self._remember(index, target)
                logger.debug("verse_by_index corpus=%s index=%s queries=%d",
                             self.corpus.key, index, queries)
                return target

            counted += len(rows)
            last = row_to_verse(rows[-1])
            self._remember(counted - 1, last)
            key = cursor_key(last)

            if len(rows) < limit:
                logger.info("verse_by_index_out_of_range corpus=%s index=%s counted=%s",
                            self.corpus.key, index, counted)
                raise VerseNotFound(self.corpus.key, index)

    def successor(self, verse: Verse, session: Session) -> Verse | None:
        rows = verses_after(self.corpus.key, cursor_key(verse), 1, session)
        return row_to_verse(rows[0]) if rows else None

    def predecessor(self, verse: Verse, session: Session) -> Verse | None:
        """
        Walk descending windows starting from the verse's section until a
        record strictly before it shows up.

        Windows are chained, so a section boundary wider than one window still
        finds the true predecessor; None means the verse is the first one.
        """
        target = cursor_key(verse)
        window = self.predecessor_window
        rows = verses_before_section(self.corpus.key, verse.section_number, window, session)
        windows = 1

        while rows:
            for row in rows:
                candidate = row_to_verse(row)
                if cursor_key(candidate) < target:
                    if windows > 1:
                        logger.debug("predecessor_chained corpus=%s windows=%d", self.corpus.key, windows)
                    return candidate
            if len(rows) < window:
                return None
            rows = verses_before(self.corpus.key, cursor_key(row_to_verse(rows[-1])), window, session)
            windows += 1

        return None

    def count(self, session: Session) -> int:
        if self._count is not None:
            return self._count
        try:
            self._count = count_verses(self.corpus.key, session)
        except SQLAlchemyError:
            session.rollback()
            logger.warning("count_unavailable corpus=%s fallback=%s",
                           self.corpus.key, self.corpus.fallback_count, exc_info=True)
            return self.corpus.fallback_count
        return self._count

    def index_of(self, verse: Verse, session: Session) -> int:
        key = cursor_key(verse)
        index = count_before(self.corpus.key, key, session)
        # Only records read back from this corpus become checkpoints.
        stored = self.by_id(verse.id, session)
        if stored is not None and cursor_key(stored) == key:
            self._remember(index, stored)
        return index

    def get(self, section_number: int, chapter: int, verse_number: int, session: Session) -> Verse | None:
        row = get_verse_row(self.corpus.key, section_number, chapter, verse_number, session)
        return row_to_verse(row) if row else None

    def by_id(self, verse_id: int, session: Session) -> Verse | None:
        row = get_verse_row_by_id(self.corpus.key, verse_id, session)
        return row_to_verse(row) if row else None

    def random(self, session: Session) -> Verse | None:
        row = random_verse_row(self.corpus.key, session)
        return row_to_verse(row) if row else None
