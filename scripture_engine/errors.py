"""
Error taxonomy for the reading engine.

NotFound is recoverable (treat as end-of-corpus), StoreUnavailable is a
transient I/O failure surfaced to the caller, InvalidRecord never escapes
the row conversion seam.
"""
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError


class ScriptureEngineError(Exception):
    pass


class ConfigurationError(ScriptureEngineError):
    pass


class NotFound(ScriptureEngineError):
    pass


class VerseNotFound(NotFound):
    def __init__(self, corpus: str, index: int):
        super().__init__(f"No verse at index {index} in corpus '{corpus}'")
        self.corpus = corpus
        self.index = index


class UnknownCorpus(NotFound):
    pass


class StoreUnavailable(ScriptureEngineError):
    pass


class InvalidRecord(ScriptureEngineError):
    def __init__(self, record_id, missing: list[str]):
        super().__init__(f"Record {record_id} is missing fields: {', '.join(missing)}")
        self.record_id = record_id
        self.missing = missing


@contextmanager
def store_errors(operation: str):
    """Translate store failures, pool timeouts included, into StoreUnavailable."""
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as e:
        raise StoreUnavailable(f"{operation} failed: {getattr(e, 'orig', None) or e}") from e
