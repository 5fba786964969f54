import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from scripture_engine.corpora import BIBLE
from scripture_engine.errors import VerseNotFound
from scripture_engine.schema import Verse
from scripture_engine.services import cursor as cursor_module
from scripture_engine.services.sql_model import VerseRow

from conftest import CORPUS_SIZE


def test_by_index_walks_the_whole_order(services, session, expected_order):
    cursor = services.cursor
    keys = [cursor.by_index(i, session).order_key for i in range(CORPUS_SIZE)]
    assert keys == expected_order


def test_by_index_without_checkpoints_matches(settings, seeded_engine, expected_order):
    # Fresh cursor per lookup so every call walks from the start of the corpus.
    with Session(seeded_engine) as session:
        for i in (0, 3, 4, 7, 8, 14):
            cursor = cursor_module.VerseCursor(BIBLE, page_size=settings.page_size)
            assert cursor.by_index(i, session).order_key == expected_order[i]


def test_by_index_out_of_range(services, session):
    with pytest.raises(VerseNotFound):
        services.cursor.by_index(CORPUS_SIZE, session)
    with pytest.raises(VerseNotFound):
        services.cursor.by_index(-1, session)


def test_empty_corpus_has_no_verses(reading):
    assert reading.get_verse_by_index("quran", 0) is None
    assert reading.get_count("quran") == 0


def test_by_index_is_idempotent(reading):
    first = reading.get_verse_by_index("bible", 9)
    second = reading.get_verse_by_index("bible", 9)
    assert first == second


def test_successor_and_predecessor_round_trip(reading):
    for i in range(CORPUS_SIZE):
        verse = reading.get_verse_by_index("bible", i)
        before = reading.get_predecessor("bible", verse)
        if i == 0:
            assert before is None
            continue
        assert reading.get_successor("bible", before) == verse
        assert reading.get_index("bible", before) == i - 1


def test_successor_at_end_is_none(reading):
    last = reading.get_verse_by_index("bible", CORPUS_SIZE - 1)
    assert reading.get_successor("bible", last) is None


def test_predecessor_across_section_wider_than_window(reading):
    # Exodus 1:1 is preceded by Genesis 2:3; the first descending window only
    # holds Exodus verses, so the scan has to continue into the next window.
    exodus_start = reading.get_verse("bible", 2, 1, 1)
    before = reading.get_predecessor("bible", exodus_start)
    assert before.order_key == (1, 2, 3)


def test_index_of(reading, expected_order):
    verse = reading.get_verse("bible", 2, 1, 3)
    assert reading.get_index("bible", verse) == expected_order.index((2, 1, 3))


def test_index_of_unstored_verse_leaves_lookups_intact(reading, expected_order):
    made_up = Verse(id=424242, corpus="bible", section_number=1, section_name="Genesis",
                    chapter=2, verse_number=99)
    index = reading.get_index("bible", made_up)
    assert index == expected_order.index((2, 1, 1))
    assert reading.get_verse_by_index("bible", index).order_key == (2, 1, 1)


def test_count_falls_back_when_store_fails(services, session, monkeypatch):
    def broken(corpus, session):
        raise OperationalError("SELECT count(*)", {}, Exception("connection refused"))

    monkeypatch.setattr(cursor_module, "count_verses", broken)
    assert services.cursor.count(session) == services.cursor.corpus.fallback_count


def test_count_is_cached(services, session, monkeypatch):
    assert services.cursor.count(session) == CORPUS_SIZE
    monkeypatch.setattr(cursor_module, "count_verses", lambda corpus, session: 0)
    assert services.cursor.count(session) == CORPUS_SIZE


def test_malformed_record_gets_defaults(reading, seeded_engine):
    with Session(seeded_engine) as session:
        session.add(VerseRow(corpus="quran", section_number=1, section_name="Al-Fatiha", chapter=1,
                             verse_number=1, primary_text="In the name of God"))
        session.add(VerseRow(corpus="quran", section_number=1, section_name=None, chapter=None,
                             verse_number=2, primary_text=None))
        session.commit()

    second = reading.get_verse_by_index("quran", 1)
    assert second.section_name == ""
    assert second.chapter == 1
    assert second.primary_text == ""
    assert reading.get_successor("quran", reading.get_verse_by_index("quran", 0)) == second


def test_random_verse_comes_from_corpus(reading):
    verse = reading.get_random_verse("bible")
    assert verse.corpus == "bible"
    assert reading.get_random_verse("quran") is None
