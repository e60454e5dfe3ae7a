"""
Date helpers shared by the fetchers and the classifier.

Upstream APIs mix ISO timestamps, "YYYY-MM-DD HH:MM:SS" strings and
Brazilian DD/MM/YYYY dates typed into free-text custom fields.
"""
from __future__ import annotations

import datetime as dt
import re
from typing import Optional
from zoneinfo import ZoneInfo

from app.config import SYNC_TIMEZONE

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_BR_DATE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")

_TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
)


def parse_timestamp(value: Optional[str]) -> Optional[dt.datetime]:
    """Parse an API timestamp; returns None for empty or unparsable values."""
    if not value:
        return None
    text = value.strip()
    if " " in text and "T" not in text:
        text = text.replace(" ", "T", 1).replace(" ", "")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return dt.datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return dt.datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_field_date(value: Optional[str]) -> Optional[dt.date]:
    """Parse a custom-field date in ``YYYY-MM-DD`` or ``DD/MM/YYYY`` form."""
    if not value:
        return None
    text = value.strip()
    try:
        if _ISO_DATE.match(text):
            return dt.date.fromisoformat(text)
        match = _BR_DATE.match(text)
        if match:
            day, month, year = (int(part) for part in match.groups())
            return dt.date(year, month, day)
    except ValueError:
        return None
    parsed = parse_timestamp(text)
    return to_local_date(parsed) if parsed else None


def to_local_date(value: Optional[dt.datetime], tz: str = SYNC_TIMEZONE) -> Optional[dt.date]:
    """Calendar day of ``value`` in the reporting timezone (naive values are taken as-is)."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(ZoneInfo(tz))
    return value.date()


def local_today(tz: str = SYNC_TIMEZONE) -> dt.date:
    return dt.datetime.now(ZoneInfo(tz)).date()
