import argparse
import logging
import re
import sys

import pandas as pd
import requests
from sqlmodel import Session

from scripture_engine.config import Settings, configure_logging
from scripture_engine.corpora import BIBLE, QURAN, Corpus, get_corpus
from scripture_engine.db_session import build_engine, create_tables
from scripture_engine.services.sql_model import VerseRow
from scripture_engine.services.sql_service import count_verses

logger = logging.getLogger(__name__)

BIBLE_BASE_URL: str = "https://bible.helloao.org/api"
TRANSLATION_ID: str = "eng_kjv"

QURAN_BASE_URL: str = "https://api.alquran.cloud/v1"
QURAN_ARABIC_EDITION: str = "quran-uthmani"
QURAN_ENGLISH_EDITION: str = "en.sahih"

REQUEST_TIMEOUT = 60
INSERT_CHUNK = 1000

COLUMNS = ["section_number", "section_name", "chapter", "verse_number",
           "primary_text", "secondary_text", "reference"]


def call_complete_api(translation: str = TRANSLATION_ID):
    url = f"{BIBLE_BASE_URL}/{translation}/complete.json"
    logger.info("fetch url=%s", url)
    response = requests.get(url, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return response.json()


def call_quran_api(edition: str):
    url = f"{QURAN_BASE_URL}/quran/{edition}"
    logger.info("fetch url=%s", url)
    response = requests.get(url, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    payload = response.json()
    if payload.get("code") != 200:
        raise RuntimeError(f"Quran API returned {payload.get('code')}: {payload.get('status')}")
    return payload["data"]


def get_verse_text(verse) -> str:
    text = ""

    # Verse content mixes plain strings with formatted parts and footnote refs.
    for content in verse.get("content", []):
        if isinstance(content, str):
            text += content
        elif isinstance(content, dict) and "text" in content:
            text += content["text"]

    text = re.sub(r'[\n\r\t\f\v]', ' ', text)
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def get_book_data(data) -> pd.DataFrame:
    rows = []

    for position, book in enumerate(data["books"], start=1):
        book_name: str = book["name"]
        book_number: int = int(book.get("order") or position)

        for chapter in book["chapters"]:
            chapter_num: int = chapter["chapter"]["number"]
            for verse in chapter["chapter"]["content"]:
                if verse.get("type") != "verse":
                    continue
                verse_num: int = verse["number"]
                rows.append({
                    "section_number": book_number,
                    "section_name": book_name,
                    "chapter": chapter_num,
                    "verse_number": verse_num,
                    "primary_text": get_verse_text(verse),
                    "secondary_text": "",
                    "reference": f"{book_name} {chapter_num}:{verse_num}",
                })

    return pd.DataFrame(rows, columns=COLUMNS)


def get_quran_data(arabic, english) -> pd.DataFrame:
    """
    Each surah is one section with a single chapter, so the corpus order
    (surah, 1, ayah) matches the traditional order.
    """
    english_text = {
        (surah["number"], ayah["numberInSurah"]): ayah["text"]
        for surah in english["surahs"]
        for ayah in surah["ayahs"]
    }

    rows = []
    for surah in arabic["surahs"]:
        surah_name = surah.get("englishName") or f"Surah {surah['number']}"
        for ayah in surah["ayahs"]:
            ayah_num = ayah["numberInSurah"]
            rows.append({
                "section_number": surah["number"],
                "section_name": surah_name,
                "chapter": 1,
                "verse_number": ayah_num,
                "primary_text": english_text.get((surah["number"], ayah_num), ""),
                "secondary_text": ayah["text"],
                "reference": f"{surah_name} {surah['number']}:{ayah_num}",
            })

    return pd.DataFrame(rows, columns=COLUMNS)


def clean_data(df: pd.DataFrame) -> pd.DataFrame:
    df = df.dropna(subset=["section_number", "chapter", "verse_number"]).copy()
    df["section_name"] = df["section_name"].fillna("").str.strip().astype(str)
    df["section_number"] = df["section_number"].astype(int)
    df["chapter"] = df["chapter"].astype(int)
    df["verse_number"] = df["verse_number"].astype(int)
    for column in ("primary_text", "secondary_text"):
        df[column] = (df[column]
                      .fillna("")
                      .str.replace(r'[\n\r\t\f\v]+', ' ', regex=True)
                      .str.replace(r'\s+', ' ', regex=True)
                      .str.strip()
                      .astype(str))
    df = df.drop_duplicates(subset=["section_number", "chapter", "verse_number"], keep="first")
    return df.sort_values(["section_number", "chapter", "verse_number"]).reset_index(drop=True)


def insert_data_to_db(df: pd.DataFrame, corpus: Corpus, engine) -> int:
    """Insert the corpus once; a corpus that already has records is left untouched."""
    with Session(engine) as session:
        existing = count_verses(corpus.key, session)
        if existing:
            logger.info("corpus_already_loaded corpus=%s records=%d", corpus.key, existing)
            return 0

        records = df.to_dict("records")
        for start in range(0, len(records), INSERT_CHUNK):
            chunk = records[start:start + INSERT_CHUNK]
            session.add_all(VerseRow(corpus=corpus.key, **record) for record in chunk)
            session.commit()
            logger.info("inserted corpus=%s rows=%d/%d", corpus.key, start + len(chunk), len(records))

    return len(records)


def check_corpus(corpus: Corpus, engine) -> bool:
    with Session(engine) as session:
        count = count_verses(corpus.key, session)

    if count < corpus.fallback_count:
        logger.warning("corpus_incomplete corpus=%s records=%d expected=%d",
                       corpus.key, count, corpus.fallback_count)
        return False

    logger.info("corpus_ok corpus=%s records=%d", corpus.key, count)
    return True


def load_corpus(corpus: Corpus, engine, translation: str = TRANSLATION_ID) -> int:
    if corpus is BIBLE:
        df = get_book_data(call_complete_api(translation))
    elif corpus is QURAN:
        df = get_quran_data(call_quran_api(QURAN_ARABIC_EDITION), call_quran_api(QURAN_ENGLISH_EDITION))
    else:
        raise ValueError(f"No loader for corpus '{corpus.key}'")

    df = clean_data(df)
    logger.info("null entries per column (should all be 0): %s", df.isnull().sum().to_dict())
    return insert_data_to_db(df, corpus, engine)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Load a scripture corpus into the verses table")
    parser.add_argument("corpus", help="Corpus key: bible or quran")
    parser.add_argument("--translation", default=TRANSLATION_ID, help="helloao translation id (bible only)")
    parser.add_argument("--check", action="store_true", help="Only report whether the corpus looks complete")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    corpus = get_corpus(args.corpus)
    engine = build_engine(settings=settings)
    create_tables(engine)

    if args.check:
        return 0 if check_corpus(corpus, engine) else 1

    inserted = load_corpus(corpus, engine, translation=args.translation)
    logger.info("load_complete corpus=%s inserted=%d", corpus.key, inserted)
    return 0 if check_corpus(corpus, engine) else 1


if __name__ == "__main__":
    sys.exit(main())
