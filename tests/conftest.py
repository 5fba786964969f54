import random
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session

from scripture_engine.config import LocalClock, Settings
from scripture_engine.db_session import build_engine, create_tables
from scripture_engine.engine import ReadingEngine
from scripture_engine.services.sql_model import VerseRow

# (section_number, section_name, chapter, verse_count)
LAYOUT = [
    (1, "Genesis", 1, 5),
    (1, "Genesis", 2, 3),
    (2, "Exodus", 1, 4),
    (3, "Leviticus", 1, 3),
]

CORPUS_SIZE = sum(count for *_, count in LAYOUT)


class FixedClock(LocalClock):
    def __init__(self, current: datetime):
        super().__init__()
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, days: int = 1) -> None:
        self.current += timedelta(days=days)


def corpus_rows(corpus: str = "bible"):
    rows = []
    for section_number, section_name, chapter, count in LAYOUT:
        for verse_number in range(1, count + 1):
            rows.append(VerseRow(
                corpus=corpus,
                section_number=section_number,
                section_name=section_name,
                chapter=chapter,
                verse_number=verse_number,
                primary_text=f"{section_name} {chapter}:{verse_number} text",
                reference=f"{section_name} {chapter}:{verse_number}",
            ))
    return rows


@pytest.fixture
def db_engine():
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def seeded_engine(db_engine):
    rows = corpus_rows()
    # Insert out of order so ids do not follow the reading order.
    random.Random(7).shuffle(rows)
    with Session(db_engine) as session:
        session.add_all(rows)
        session.commit()
    return db_engine


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 10, 9, 30))


@pytest.fixture
def settings():
    # Small batches so the tests cross batch and window boundaries.
    return Settings(page_size=4, predecessor_window=3, streak_window=30)


@pytest.fixture
def reading(seeded_engine, settings, clock):
    return ReadingEngine(seeded_engine, settings=settings, clock=clock)


@pytest.fixture
def services(reading):
    return reading.services("bible")


@pytest.fixture
def session(seeded_engine):
    with Session(seeded_engine) as session:
        yield session


@pytest.fixture
def expected_order():
    return [
        (section_number, chapter, verse_number)
        for section_number, _, chapter, count in LAYOUT
        for verse_number in range(1, count + 1)
    ]
