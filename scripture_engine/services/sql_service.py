import logging
import operator
from typing import Sequence

from sqlalchemy import and_, func, or_
from sqlmodel import Session, select

from scripture_engine.errors import InvalidRecord
from scripture_engine.schema import Verse
from .sql_model import VerseRow

logger = logging.getLogger(__name__)

# Substituted for missing fields so one bad record cannot block traversal.
# The SQL ordering coalesces with the same values, so a defaulted record sorts
# exactly where its converted Verse claims to be.
DEFAULT_SECTION = 0
DEFAULT_CHAPTER = 1
DEFAULT_VERSE = 1
DEFAULT_SECTION_NAME = ""

SECTION = func.coalesce(VerseRow.section_number, DEFAULT_SECTION)
CHAPTER = func.coalesce(VerseRow.chapter, DEFAULT_CHAPTER)
VERSE = func.coalesce(VerseRow.verse_number, DEFAULT_VERSE)

REQUIRED_FIELDS = ("section_number", "section_name", "chapter", "verse_number")

CursorKey = tuple[int, int, int, int]


def cursor_key(verse: Verse) -> CursorKey:
    # id breaks ties between records whose defaulted keys collide.
    return (verse.section_number, verse.chapter, verse.verse_number, verse.id)


def _validate(row: VerseRow) -> None:
    missing = [name for name in REQUIRED_FIELDS if getattr(row, name) in (None, "")]
    if missing:
        raise InvalidRecord(row.id, missing)


def row_to_verse(row: VerseRow) -> Verse:
    try:
        _validate(row)
    except InvalidRecord as e:
        logger.warning("invalid_record corpus=%s %s", row.corpus, e)

    return Verse(
        id=row.id,
        corpus=row.corpus,
        section_number=row.section_number if row.section_number is not None else DEFAULT_SECTION,
        section_name=row.section_name or DEFAULT_SECTION_NAME,
        chapter=row.chapter if row.chapter is not None else DEFAULT_CHAPTER,
        verse_number=row.verse_number if row.verse_number is not None else DEFAULT_VERSE,
        primary_text=row.primary_text or "",
        secondary_text=row.secondary_text or "",
        reference=row.reference or "",
    )


def _past(key: CursorKey, descending: bool = False):
    """Rows strictly after `key` in the walk direction."""
    beyond = operator.lt if descending else operator.gt
    section, chapter, verse, verse_id = key
    return or_(
        beyond(SECTION, section),
        and_(SECTION == section, beyond(CHAPTER, chapter)),
        and_(SECTION == section, CHAPTER == chapter, beyond(VERSE, verse)),
        and_(SECTION == section, CHAPTER == chapter, VERSE == verse, beyond(VerseRow.id, verse_id)),
    )


def _ordered(corpus: str, descending: bool = False):
    stmt = select(VerseRow).where(VerseRow.corpus == corpus)
    if descending:
        return stmt.order_by(SECTION.desc(), CHAPTER.desc(), VERSE.desc(), VerseRow.id.desc())
    return stmt.order_by(SECTION, CHAPTER, VERSE, VerseRow.id)


def first_verses(corpus: str, limit: int, session: Session) -> Sequence[VerseRow]:
    return session.exec(_ordered(corpus).limit(limit)).all()


def verses_after(corpus: str, key: CursorKey, limit: int, session: Session) -> Sequence[VerseRow]:
    stmt = _ordered(corpus).where(_past(key)).limit(limit)
    return session.exec(stmt).all()


def verses_before_section(corpus: str, section_number: int, limit: int, session: Session) -> Sequence[VerseRow]:
    """Descending window over every record in sections <= section_number."""
    stmt = _ordered(corpus, descending=True).where(SECTION <= section_number).limit(limit)
    return session.exec(stmt).all()


def verses_before(corpus: str, key: CursorKey, limit: int, session: Session) -> Sequence[VerseRow]:
    stmt = _ordered(corpus, descending=True).where(_past(key, descending=True)).limit(limit)
    return session.exec(stmt).all()


def count_verses(corpus: str, session: Session) -> int:
    stmt = select(func.count()).select_from(VerseRow).where(VerseRow.corpus == corpus)
    return int(session.exec(stmt).one())


def count_before(corpus: str, key: CursorKey, session: Session) -> int:
    stmt = (select(func.count())
            .select_from(VerseRow)
            .where(VerseRow.corpus == corpus)
            .where(_past(key, descending=True)))
    return int(session.exec(stmt).one())


def get_verse_row(corpus: str, section_number: int, chapter: int, verse_number: int,
                  session: Session) -> VerseRow | None:
    stmt = (select(VerseRow)
            .where(VerseRow.corpus == corpus)
            .where(VerseRow.section_number == section_number)
            .where(VerseRow.chapter == chapter)
            .where(VerseRow.verse_number == verse_number))

    return session.exec(stmt).first()


def get_verse_row_by_id(corpus: str, verse_id: int, session: Session) -> VerseRow | None:
    row = session.get(VerseRow, verse_id)
    if row is None or row.corpus != corpus:
        return None
    return row


def random_verse_row(corpus: str, session: Session) -> VerseRow | None:
    stmt = select(VerseRow).where(VerseRow.corpus == corpus).order_by(func.random()).limit(1)
    return session.exec(stmt).first()
