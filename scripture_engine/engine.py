"""
In-process boundary consumed by the presentation layer.

Every operation takes the corpus key ("bible" or "quran") and opens its own
session. Out-of-range lookups come back as None / False; store outages are
raised as StoreUnavailable so the caller can show a retry prompt.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlmodel import Session

from scripture_engine.config import LocalClock, Settings
from scripture_engine.corpora import Corpus, get_corpus
from scripture_engine.db_session import build_engine, create_tables
from scripture_engine.errors import VerseNotFound, store_errors
from scripture_engine.schema import (
    DailyStats,
    ProgressSummary,
    ReadEvent,
    ReadingPosition,
    TodayAssignment,
    Verse,
)
from scripture_engine.services.cursor import VerseCursor
from scripture_engine.services.daily import DailyScheduler
from scripture_engine.services.positions import ReadingPositionStore
from scripture_engine.services.progress import ProgressTracker

logger = logging.getLogger(__name__)


@dataclass
class CorpusServices:
    cursor: VerseCursor
    positions: ReadingPositionStore
    tracker: ProgressTracker
    daily: DailyScheduler


class ReadingEngine:
    def __init__(self, engine, settings: Settings | None = None, clock: LocalClock | None = None):
        self.engine = engine
        self.settings = settings or Settings()
        self.clock = clock or LocalClock(self.settings.zone())
        self._services: dict[str, CorpusServices] = {}

    def services(self, corpus) -> CorpusServices:
        corpus: Corpus = get_corpus(corpus)
        services = self._services.get(corpus.key)
        if services is None:
            cursor = VerseCursor(corpus, self.settings.page_size, self.settings.predecessor_window)
            positions = ReadingPositionStore(cursor, self.clock)
            tracker = ProgressTracker(cursor, self.clock, self.settings.streak_window)
            daily = DailyScheduler(cursor, positions, tracker, self.clock)
            services = CorpusServices(cursor, positions, tracker, daily)
            self._services[corpus.key] = services
        return services

    # Traversal

    def get_verse_by_index(self, corpus, index: int) -> Verse | None:
        cursor = self.services(corpus).cursor
        with store_errors("get_verse_by_index"), Session(self.engine) as session:
            try:
                return cursor.by_index(index, session)
            except VerseNotFound:
                return None

    def get_successor(self, corpus, verse: Verse) -> Verse | None:
        cursor = self.services(corpus).cursor
        with store_errors("get_successor"), Session(self.engine) as session:
            return cursor.successor(verse, session)

    def get_predecessor(self, corpus, verse: Verse) -> Verse | None:
        cursor = self.services(corpus).cursor
        with store_errors("get_predecessor"), Session(self.engine) as session:
            return cursor.predecessor(verse, session)

    def get_count(self, corpus) -> int:
        cursor = self.services(corpus).cursor
        with Session(self.engine) as session:
            return cursor.count(session)

    def get_index(self, corpus, verse: Verse) -> int:
        cursor = self.services(corpus).cursor
        with store_errors("get_index"), Session(self.engine) as session:
            return cursor.index_of(verse, session)

    def get_verse(self, corpus, section_number: int, chapter: int, verse_number: int) -> Verse | None:
        cursor = self.services(corpus).cursor
        with store_errors("get_verse"), Session(self.engine) as session:
            return cursor.get(section_number, chapter, verse_number, session)

    def get_verse_by_id(self, corpus, verse_id: int) -> Verse | None:
        cursor = self.services(corpus).cursor
        with store_errors("get_verse_by_id"), Session(self.engine) as session:
            return cursor.by_id(verse_id, session)

    def get_random_verse(self, corpus) -> Verse | None:
        cursor = self.services(corpus).cursor
        with store_errors("get_random_verse"), Session(self.engine) as session:
            return cursor.random(session)

    # Reading position

    def get_or_create_position(self, user_id: str, corpus) -> ReadingPosition:
        """Get-or-create: the first call for a user persists the index-0 default."""
        positions = self.services(corpus).positions
        with store_errors("get_or_create_position"), Session(self.engine) as session:
            return positions.get_or_create(user_id, session)

    def set_position(self, user_id: str, corpus, index: int, verse: Verse) -> None:
        positions = self.services(corpus).positions
        with store_errors("set_position"), Session(self.engine) as session:
            positions.set(user_id, index, verse, session)

    def reset_position(self, user_id: str, corpus) -> None:
        positions = self.services(corpus).positions
        with store_errors("reset_position"), Session(self.engine) as session:
            positions.reset(user_id, session)

    # Read log and progress

    def mark_read(self, user_id: str, corpus, verse_id: int, verse: Verse | None = None) -> bool:
        services = self.services(corpus)
        with store_errors("mark_read"), Session(self.engine) as session:
            if verse is None or verse.id != verse_id or verse.corpus != services.cursor.corpus.key:
                verse = services.cursor.by_id(verse_id, session)
                if verse is None:
                    logger.warning("mark_read_unknown_verse corpus=%s verse=%s", services.cursor.corpus.key, verse_id)
                    return False
            return services.tracker.mark_read(user_id, verse, session)

    def has_read(self, user_id: str, corpus, verse_id: int) -> bool:
        tracker = self.services(corpus).tracker
        with store_errors("has_read"), Session(self.engine) as session:
            return tracker.has_read(user_id, verse_id, session)

    def get_progress(self, user_id: str, corpus) -> ProgressSummary:
        tracker = self.services(corpus).tracker
        with store_errors("get_progress"), Session(self.engine) as session:
            return tracker.progress(user_id, session)

    def get_read_history(self, user_id: str, corpus, start: datetime | None = None,
                         end: datetime | None = None) -> list[ReadEvent]:
        tracker = self.services(corpus).tracker
        with store_errors("get_read_history"), Session(self.engine) as session:
            return tracker.read_history(user_id, session, start=start, end=end)

    # Verse of the day

    def get_today_assignment(self, user_id: str | None, corpus) -> TodayAssignment | None:
        daily = self.services(corpus).daily
        with store_errors("get_today_assignment"), Session(self.engine) as session:
            return daily.get_today(user_id, session)

    def mark_today_read(self, user_id: str, corpus, verse_id: int) -> bool:
        daily = self.services(corpus).daily
        with store_errors("mark_today_read"), Session(self.engine) as session:
            return daily.mark_today_read(user_id, verse_id, session)

    def get_daily_stats(self, user_id: str, corpus) -> DailyStats:
        tracker = self.services(corpus).tracker
        with store_errors("get_daily_stats"), Session(self.engine) as session:
            return tracker.daily_stats(user_id, session)


def engine_from_env() -> ReadingEngine:
    settings = Settings.from_env()
    engine = build_engine(settings=settings)
    create_tables(engine)
    return ReadingEngine(engine, settings=settings)
