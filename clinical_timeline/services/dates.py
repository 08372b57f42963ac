"""Flexible clinical date parsing."""

import logging
import re
from datetime import date, datetime, timedelta

from dateutil import parser as date_parser

from clinical_timeline.core.errors import DateParseError

logger = logging.getLogger(__name__)

# Explicit dates recognised in free text
DATE_PATTERNS = [
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"),
    re.compile(r"\b\d{1,2}-\d{1,2}-\d{2,4}\b"),
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(
        r"\b(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*\.?\s+\d{1,2},?\s+\d{4}\b",
        re.IGNORECASE,
    ),
]

# A date string must carry a year; dateutil would otherwise fill in today's
_HAS_YEAR = re.compile(r"\b\d{4}\b|\b\d{1,2}[/-]\d{1,2}[/-]\d{2}\b")


def parse_date(value: str | date | datetime) -> date:
    """Parse a clinical date string.

    Accepts ISO dates, MM/DD/YYYY, MM-DD-YY(YY) and "Month DD, YYYY".

    Raises:
        DateParseError: If the value is empty, has no year or cannot be parsed.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = (value or "").strip()
    if not text or not _HAS_YEAR.search(text):
        raise DateParseError(value)
    try:
        return date_parser.parse(text, dayfirst=False, yearfirst=bool(re.match(r"\d{4}-", text))).date()
    except (ValueError, OverflowError) as e:
        raise DateParseError(value) from e


def parse_flexible_date(value: str | date | datetime | None) -> date | None:
    """Parse a date, returning None instead of raising."""
    if value is None:
        return None
    try:
        return parse_date(value)
    except DateParseError as e:
        logger.debug(f"Ignoring date: {e}")
        return None


def to_iso(value: str | date | datetime | None) -> str | None:
    """Normalize a date to YYYY-MM-DD, or None if unparseable."""
    parsed = parse_flexible_date(value)
    return parsed.isoformat() if parsed else None


def to_timestamp(value: str | date | datetime | None) -> datetime | None:
    """Midnight timestamp for a date, or None if unparseable."""
    parsed = parse_flexible_date(value)
    return datetime(parsed.year, parsed.month, parsed.day) if parsed else None


def add_days(value: str | date, days: int) -> str | None:
    """ISO date ``days`` after ``value``."""
    parsed = parse_flexible_date(value)
    if parsed is None:
        return None
    return (parsed + timedelta(days=days)).isoformat()


def find_dates(text: str) -> list[tuple[int, str]]:
    """All explicit dates in text as (offset, matched_text), by offset."""
    found: dict[int, str] = {}
    for pattern in DATE_PATTERNS:
        for m in pattern.finditer(text or ""):
            # Longest match wins at a given offset
            if len(m.group(0)) > len(found.get(m.start(), "")):
                found[m.start()] = m.group(0)
    return sorted(found.items())


def days_between(start: datetime, end: datetime) -> float:
    """Signed difference in days."""
    return (end - start).total_seconds() / 86400.0


def hours_between(start: datetime, end: datetime) -> float:
    """Signed difference in hours."""
    return (end - start).total_seconds() / 3600.0
