import logging
import os
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

DEFAULT_PAGE_SIZE = 100
DEFAULT_PREDECESSOR_WINDOW = 100
DEFAULT_STREAK_WINDOW = 30


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("config_invalid_int name=%s value=%s default=%s", name, raw, default)
        return default
    if value < 1:
        logger.warning("config_non_positive name=%s value=%s default=%s", name, value, default)
        return default
    return value


@dataclass(frozen=True)
class Settings:
    db_url: Optional[str] = None
    page_size: int = DEFAULT_PAGE_SIZE
    predecessor_window: int = DEFAULT_PREDECESSOR_WINDOW
    streak_window: int = DEFAULT_STREAK_WINDOW
    timezone: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            db_url=os.getenv("SCRIPTURE_DB_URL"),
            page_size=_int_env("SCRIPTURE_PAGE_SIZE", DEFAULT_PAGE_SIZE),
            predecessor_window=_int_env("SCRIPTURE_PREDECESSOR_WINDOW", DEFAULT_PREDECESSOR_WINDOW),
            streak_window=_int_env("SCRIPTURE_STREAK_WINDOW", DEFAULT_STREAK_WINDOW),
            timezone=os.getenv("SCRIPTURE_TIMEZONE") or None,
            log_level=os.getenv("SCRIPTURE_LOG_LEVEL", "INFO").upper(),
        )

    def zone(self) -> Optional[ZoneInfo]:
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError:
            logger.warning("config_unknown_timezone timezone=%s using host local time", self.timezone)
            return None


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


class LocalClock:
    """
    Calendar days are local to the reading environment, not UTC.

    Timestamps are stored naive, already converted to local wall time, so
    grouping read events by `.date()` yields local calendar days.
    """

    def __init__(self, zone: Optional[ZoneInfo] = None):
        self.zone = zone

    def now(self) -> datetime:
        if self.zone is None:
            return datetime.now()
        return datetime.now(self.zone).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()
