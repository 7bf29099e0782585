import re
from datetime import datetime, timezone
from typing import Optional

# School years start in September: Oct 2025 -> 2025, Mar 2026 -> 2025
SCHOOL_YEAR_START_MONTH = 9

_WORD_RE = re.compile(r"\S+")


def utcnow() -> datetime:
    # naive UTC, so values compare the same on SQLite and Postgres
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_current_school_year(now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    return now.year if now.month >= SCHOOL_YEAR_START_MONTH else now.year - 1


def count_words(text: Optional[str]) -> int:
    if not text:
        return 0
    return len(_WORD_RE.findall(text))


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()
