# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Target-date resolver — turns relative-day tokens into calendar dates.

The comprehension step speaks a small vocabulary ("yesterday",
"two_days_ago", "next_monday", "this_weekend", "dec_25", ...). Every
resolved date is stamped at 12:00 local so that shifting it by a few
hours of timezone never moves it to another day.

Unknown tokens resolve to None; resolve_or_raise() turns that into
UnresolvableDateError for callers that prefer exceptions.
"""

import re
from datetime import datetime, timedelta
from typing import Optional

from core.schemas import UnresolvableDateError
from signals.temporal import sunday_index

NOON = 12

WEEKDAYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]

MONTH_PREFIXES = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

DAYS_AGO_WORDS = {
    "two": 2, "three": 3, "four": 4, "five": 5, "six": 6, "seven": 7,
    "a_few": 3, "couple": 2, "a_couple": 2,
}

SAME_DAY = frozenset({"today", "now", "this_morning", "tonight", "earlier_today"})
PREVIOUS_DAY = frozenset({"yesterday", "last_night"})

FIXED_OFFSETS = {
    "last_week": -7,
    "tomorrow": 1,
    "day_after_tomorrow": 2,
    "next_week": 7,
    "in_a_few_days": 3,
    "in_couple_days": 3,
}

_DAYS_AGO_RE = re.compile(r"^(\w+?)_days?_ago$")
_WEEKDAY_RE = re.compile(
    r"^(?:(last|next|this)_)?(sunday|monday|tuesday|wednesday|thursday|friday|saturday)$"
)
_MONTH_DAY_RE = re.compile(r"^(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*[_ ]?(\d{1,2})$")


def normalize_token(token: str) -> str:
    return re.sub(r"\s+", "_", token.strip().lower())


def normalize_to_noon(dt: datetime) -> datetime:
    return dt.replace(hour=NOON, minute=0, second=0, microsecond=0)


def _days_ago(word: str) -> int:
    if word in DAYS_AGO_WORDS:
        return DAYS_AGO_WORDS[word]
    try:
        return int(word) or 1
    except ValueError:
        return 1


def _weekday_offset(prefix: Optional[str], target: int, current: int) -> int:
    """Signed day offset from today to the requested weekday."""
    if prefix == "last":
        back = current - target
        if back <= 0:
            back += 7
        return -(back + 7)
    if prefix == "next":
        forward = target - current
        if forward <= 0:
            forward += 7
        return forward + 7
    if prefix == "this":
        return target - current
    # bare weekday: most recent past occurrence
    back = current - target
    if back <= 0:
        back += 7
    return -back


def resolve_target_date(token: str, reference: Optional[datetime] = None) -> Optional[datetime]:
    """Resolve a relative-day token against reference (default: now). None if unknown."""
    if not token or not isinstance(token, str):
        return None

    today = normalize_to_noon(reference or datetime.now())
    ref = normalize_token(token)
    current = sunday_index(today)

    if ref in SAME_DAY:
        return today
    if ref in PREVIOUS_DAY:
        return today - timedelta(days=1)
    if ref in FIXED_OFFSETS:
        return today + timedelta(days=FIXED_OFFSETS[ref])

    m = _DAYS_AGO_RE.match(ref)
    if m:
        return today - timedelta(days=_days_ago(m.group(1)))

    if ref == "this_weekend":
        return today + timedelta(days=(6 - current + 7) % 7 or 7)

    if ref == "later_this_week":
        return today + timedelta(days=max(1, min(3, 6 - current)))

    m = _WEEKDAY_RE.match(ref)
    if m:
        offset = _weekday_offset(m.group(1), WEEKDAYS.index(m.group(2)), current)
        return today + timedelta(days=offset)

    m = _MONTH_DAY_RE.match(ref)
    if m:
        try:
            date = today.replace(month=MONTH_PREFIXES[m.group(1)], day=int(m.group(2)))
        except ValueError:
            return None
        if date < today:
            try:
                date = date.replace(year=date.year + 1)
            except ValueError:
                return None
        return date

    return None


def resolve_or_raise(token: str, reference: Optional[datetime] = None) -> datetime:
    date = resolve_target_date(token, reference)
    if date is None:
        raise UnresolvableDateError(token)
    return date
