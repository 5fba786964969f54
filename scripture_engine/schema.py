from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Verse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    corpus: str
    section_number: int
    section_name: str
    chapter: int
    verse_number: int
    primary_text: str = ""
    secondary_text: str = ""
    reference: str = ""

    @property
    def order_key(self) -> tuple[int, int, int]:
        return (self.section_number, self.chapter, self.verse_number)


class ReadingPosition(BaseModel):
    user_id: str
    corpus: str
    current_index: int = 0
    section_number: int = 1
    section_name: str = ""
    chapter: int = 1
    last_visited_at: datetime
    percent_complete: float = 0.0


class ReadEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    corpus: str
    verse_id: int
    read_at: datetime


class ProgressSummary(BaseModel):
    read_count: int
    total_count: int
    current_streak: int
    longest_streak: int
    last_read_date: Optional[datetime] = None
    current_index: Optional[int] = None
    section_number: Optional[int] = None
    section_name: Optional[str] = None
    chapter: Optional[int] = None
    percent_complete: Optional[float] = None


class TodayAssignment(BaseModel):
    verse: Verse
    day: date
    verse_index: Optional[int] = None
    is_read: bool = False
    is_restart: bool = False
    # True when the verse was picked at random because nothing could be assigned.
    is_fallback: bool = False


class DailyStats(BaseModel):
    current_streak: int
    longest_streak: int
    total_days_read: int
    total_days_tracked: int
