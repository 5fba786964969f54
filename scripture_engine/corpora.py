from dataclasses import dataclass

from .errors import UnknownCorpus


@dataclass(frozen=True)
class Corpus:
    key: str
    title: str
    # Used by get_count when the store cannot be reached.
    fallback_count: int
    first_section_number: int
    first_section_name: str


BIBLE = Corpus(
    key="bible",
    title="Holy Bible",
    fallback_count=31102,
    first_section_number=1,
    first_section_name="Genesis",
)

QURAN = Corpus(
    key="quran",
    title="Holy Quran",
    fallback_count=6236,
    first_section_number=1,
    first_section_name="Al-Fatiha",
)

CORPORA = {corpus.key: corpus for corpus in (BIBLE, QURAN)}


def get_corpus(key) -> Corpus:
    if isinstance(key, Corpus):
        return key
    corpus = CORPORA.get(str(key).strip().lower())
    if corpus is None:
        raise UnknownCorpus(f"Unknown corpus '{key}'. Available: {', '.join(sorted(CORPORA))}")
    return corpus
