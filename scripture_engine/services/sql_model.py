from datetime import date, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

# Timestamps are naive local wall time; recent sqlmodel releases default
# datetime fields to a UTC-only type, so the column type is pinned here.
NAIVE_DATETIME = DateTime(timezone=False)


class VerseRow(SQLModel, table=True):
    """Immutable corpus record. `id` is assigned at load time and never reused."""
    __tablename__ = "verses"
    __table_args__ = (
        UniqueConstraint("corpus", "section_number", "chapter", "verse_number", name="uq_verse_order"),
    )
    id: int | None = Field(default=None, primary_key=True)
    corpus: str = Field(index=True)
    section_number: int | None = Field(default=None, index=True)
    section_name: str | None = Field(default=None)
    chapter: int | None = Field(default=None)
    verse_number: int | None = Field(default=None)
    primary_text: str | None = Field(default=None)
    secondary_text: str | None = Field(default=None)
    reference: str | None = Field(default=None)


class ReadingPositionRow(SQLModel, table=True):
    __tablename__ = "reading_positions"
    user_id: str = Field(primary_key=True)
    corpus: str = Field(primary_key=True)
    current_index: int = Field(default=0)
    section_number: int = Field(default=1)
    section_name: str = Field(default="")
    chapter: int = Field(default=1)
    last_visited_at: datetime = Field(sa_type=NAIVE_DATETIME)
    percent_complete: float = Field(default=0.0)


class ReadEventRow(SQLModel, table=True):
    __tablename__ = "read_events"
    __table_args__ = (
        UniqueConstraint("user_id", "corpus", "verse_id", name="uq_read_event"),
    )
    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    corpus: str = Field(index=True)
    verse_id: int
    read_at: datetime = Field(index=True, sa_type=NAIVE_DATETIME)


class ReadCounterRow(SQLModel, table=True):
    """Legacy cached counter; read_events is authoritative."""
    __tablename__ = "read_counters"
    user_id: str = Field(primary_key=True)
    corpus: str = Field(primary_key=True)
    read_count: int = Field(default=0)
    last_read_at: datetime | None = Field(default=None, sa_type=NAIVE_DATETIME)


class DailyAssignmentRow(SQLModel, table=True):
    __tablename__ = "daily_assignments"
    user_id: str = Field(primary_key=True)
    corpus: str = Field(primary_key=True)
    day: date = Field(primary_key=True)
    verse_id: int
    verse_index: int
    section_number: int
    section_name: str
    chapter: int
    is_read: bool = Field(default=False)
    is_restart: bool = Field(default=False)
    read_at: datetime | None = Field(default=None, sa_type=NAIVE_DATETIME)
    created_at: datetime = Field(sa_type=NAIVE_DATETIME)
    updated_at: datetime = Field(sa_type=NAIVE_DATETIME)
