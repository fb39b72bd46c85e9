import re
from datetime import datetime, timezone
from typing import Mapping, Optional

from jobs.schemas import NormalizedReview

# Priority order matters: the first non-empty value wins.
CONTENT_ALIASES = ("content", "text", "review", "comment", "caption")

DATE_ALIASES = frozenset(
    {
        "date",
        "publish_date",
        "created_at",
        "timestamp",
        "published_at",
        "time",
        "created",
        "published",
        "tanggal",
        "waktu",
    }
)

_ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")


def _canonical(column: Optional[str]) -> str:
    return (column or "").strip().lower()


def _today(now: Optional[datetime] = None) -> str:
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.date().isoformat()


def extract_content(row: Mapping[str, Optional[str]]) -> str:
    """
    Content lookup by alias priority, not by header order.
    Column names are compared trimmed and case-insensitively.
    """
    by_alias = {}
    for column, value in row.items():
        key = _canonical(column)
        if key in CONTENT_ALIASES and key not in by_alias:
            by_alias[key] = value

    for alias in CONTENT_ALIASES:
        value = (by_alias.get(alias) or "").strip()
        if value:
            return value
    return ""


def find_date_value(row: Mapping[str, Optional[str]]) -> Optional[str]:
    # First matching header in header order.
    for column, value in row.items():
        if _canonical(column) in DATE_ALIASES:
            return value
    return None


def normalize_date(raw: Optional[str], now: Optional[datetime] = None) -> str:
    """
    "2025-09-15T10:00:00Z" -> "2025-09-15"
    "2025-09-15 10:00:00"  -> "2025-09-15"

    Values that do not start with YYYY-MM-DD are kept after the time cut.
    """
    value = (raw or "").strip()
    if not value:
        return _today(now)

    value = value.split("T")[0].split(" ")[0]
    if _ISO_DATE_PREFIX.match(value):
        value = value[:10]
    return value or _today(now)


def normalize_csv_row(
    row: Mapping[str, Optional[str]],
    platform: str,
    ordinal: int,
    now: Optional[datetime] = None,
) -> Optional[NormalizedReview]:
    """
    Build a NormalizedReview from one parsed CSV row.

    `ordinal` is the 1-based position of the row in the upload. Rows without
    content return None and are dropped by the caller.
    """
    content = extract_content(row)
    if not content:
        return None

    return NormalizedReview(
        id=f"csv-row-{ordinal}",
        content=content,
        date=normalize_date(find_date_value(row), now=now),
        source=platform,
    )
