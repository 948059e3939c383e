# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Temporal expression parser — finds dates and times in free journal text.

Runs locally with no model in the loop. Recognizes:
- Relative days: "today", "tonight", "tomorrow", "yesterday"
- Weekdays: "next Friday", "this Sunday", "on Monday"
- Offsets: "in 3 days", "in a week", "in two months"
- Ranges: "next week", "this month", "next year"
- Times: "at 3pm", "at 10:30 a.m.", "in the evening"
- Calendar days: "January 15", "Mar 3rd"

Ambiguity rules:
- "next <weekday>" is always at least 6 days out.
- A time that already passed today means tomorrow.
- A bare hour 1-6 with no am/pm means afternoon.
- A month-day already passed this year means next year.

Usage:
    from signals.temporal import parse_temporal_expressions, has_temporal_indicators

    if has_temporal_indicators(text):
        parsed = parse_temporal_expressions(text)
"""

import calendar
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

DAY_NAMES = {
    "sunday": 0, "sun": 0,
    "monday": 1, "mon": 1,
    "tuesday": 2, "tue": 2, "tues": 2,
    "wednesday": 3, "wed": 3,
    "thursday": 4, "thu": 4, "thur": 4, "thurs": 4,
    "friday": 5, "fri": 5,
    "saturday": 6, "sat": 6,
}

MONTH_NAMES = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "a": 1, "an": 1,
}

PERIOD_HOURS = {"morning": 9, "afternoon": 14, "evening": 18, "night": 21}

_DAY_ALT = "sunday|monday|tuesday|wednesday|thursday|friday|saturday|sun|mon|tue|tues|wed|thu|thur|thurs|fri|sat"
_FULL_DAY_ALT = "sunday|monday|tuesday|wednesday|thursday|friday|saturday"
_MONTH_ALT = (
    "january|february|march|april|may|june|july|august|september|october|november|december"
    "|jan|feb|mar|apr|jun|jul|aug|sept|sep|oct|nov|dec"
)


@dataclass
class TemporalExpression:
    """One recognized expression. `date` for specific/time kinds, start/end for ranges."""
    type: str  # specific | range | time | time_period
    label: str
    matched_text: str = ""
    position: int = 0
    date: Optional[datetime] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    hour: Optional[int] = None
    minute: Optional[int] = None
    period: Optional[str] = None
    is_past: bool = False


@dataclass
class TemporalParse:
    expressions: List[TemporalExpression] = field(default_factory=list)

    @property
    def has_temporal_ref(self) -> bool:
        return bool(self.expressions)

    @property
    def count(self) -> int:
        return len(self.expressions)


# ============================================================================
# Date helpers
# ============================================================================

def _midnight(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=23, minute=59, second=59, microsecond=999999)


def sunday_index(dt: datetime) -> int:
    """Day of week with Sunday=0 ... Saturday=6."""
    return (dt.weekday() + 1) % 7


def add_months(dt: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    month0 = dt.month - 1 + months
    year = dt.year + month0 // 12
    month = month0 % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def next_day_of_week(day_index: int, now: datetime) -> datetime:
    """Next occurrence of a Sunday-based weekday, never today."""
    days = day_index - sunday_index(now)
    if days <= 0:
        days += 7
    return _midnight(now) + timedelta(days=days)


def _title(word: str) -> str:
    return word[:1].upper() + word[1:].lower()


def _parse_number(raw: str) -> Optional[int]:
    raw = raw.lower().strip()
    if raw in NUMBER_WORDS:
        return NUMBER_WORDS[raw]
    try:
        return int(raw)
    except ValueError:
        return None


# ============================================================================
# Pattern handlers, each returns a TemporalExpression or None
# ============================================================================

def _today(m, now):
    label = "Tonight" if m.group(1).lower() == "tonight" else "Today"
    return TemporalExpression(type="specific", date=_midnight(now), label=label)


def _tomorrow(m, now):
    return TemporalExpression(
        type="specific", date=_midnight(now) + timedelta(days=1), label="Tomorrow",
    )


def _yesterday(m, now):
    return TemporalExpression(
        type="specific", date=_midnight(now) - timedelta(days=1),
        label="Yesterday", is_past=True,
    )


def _next_weekday(m, now):
    date = next_day_of_week(DAY_NAMES[m.group(1).lower()], now)
    if (date.date() - now.date()).days < 6:
        date += timedelta(days=7)
    return TemporalExpression(type="specific", date=date, label=f"Next {_title(m.group(1))}")


def _this_weekday(m, now):
    date = next_day_of_week(DAY_NAMES[m.group(1).lower()], now)
    return TemporalExpression(type="specific", date=date, label=f"This {_title(m.group(1))}")


def _on_weekday(m, now):
    date = next_day_of_week(DAY_NAMES[m.group(1).lower()], now)
    return TemporalExpression(type="specific", date=date, label=_title(m.group(1)))


def _in_offset(m, now):
    num = _parse_number(m.group(1))
    if not num:
        return None
    unit = m.group(2).lower()
    date = _midnight(now)
    if unit == "day":
        date += timedelta(days=num)
    elif unit == "week":
        date += timedelta(weeks=num)
    else:
        date = add_months(date, num)
    plural = "s" if num > 1 else ""
    return TemporalExpression(type="specific", date=date, label=f"In {num} {unit}{plural}")


def _next_range(m, now):
    unit = m.group(1).lower()
    today = _midnight(now)
    if unit == "week":
        days_to_monday = (8 - sunday_index(today)) % 7 or 7
        start = today + timedelta(days=days_to_monday)
        end = start + timedelta(days=6)
    elif unit == "month":
        start = add_months(today.replace(day=1), 1)
        end = start.replace(day=calendar.monthrange(start.year, start.month)[1])
    else:
        start = today.replace(year=today.year + 1, month=1, day=1)
        end = start.replace(month=12, day=31)
    return TemporalExpression(
        type="range", start=start, end=_end_of_day(end), label=f"Next {unit}",
    )


def _this_range(m, now):
    unit = m.group(1).lower()
    today = _midnight(now)
    if unit == "week":
        start = today - timedelta(days=sunday_index(today))
        end = start + timedelta(days=6)
    elif unit == "month":
        start = today.replace(day=1)
        end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
    else:
        start = today.replace(month=1, day=1)
        end = today.replace(month=12, day=31)
    return TemporalExpression(
        type="range", start=start, end=_end_of_day(end), label=f"This {unit}",
    )


def _at_time(m, now):
    raw_hour, raw_minute = m.group(1), m.group(2)
    hour = int(raw_hour)
    minute = int(raw_minute) if raw_minute else 0
    meridiem = m.group(3).lower().replace(".", "") if m.group(3) else None

    if hour < 1 or hour > 12 or minute > 59:
        return None

    if meridiem == "pm" and hour != 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    elif meridiem is None and 1 <= hour <= 6:
        hour += 12

    date = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if date < now:
        date += timedelta(days=1)

    label = raw_hour
    if raw_minute:
        label += f":{raw_minute}"
    if meridiem:
        label += f" {meridiem.upper()}"
    return TemporalExpression(type="time", date=date, hour=hour, minute=minute, label=label)


def _part_of_day(m, now):
    period = m.group(1).lower()
    date = now.replace(hour=PERIOD_HOURS[period], minute=0, second=0, microsecond=0)
    if date < now:
        date += timedelta(days=1)
    return TemporalExpression(
        type="time_period", date=date, period=period, label=f"In the {period}",
    )


def _month_day(m, now):
    month = MONTH_NAMES[m.group(1).lower()]
    day = int(m.group(2))
    try:
        date = datetime(now.year, month, day)
    except ValueError:
        return None
    if date < _midnight(now):
        try:
            date = date.replace(year=date.year + 1)
        except ValueError:
            return None
    return TemporalExpression(type="specific", date=date, label=f"{m.group(1)} {day}")


_Handler = Callable[[re.Match, datetime], Optional[TemporalExpression]]

TEMPORAL_PATTERNS: List[Tuple["re.Pattern[str]", _Handler]] = [
    (re.compile(r"\b(today|tonight)\b", re.I), _today),
    (re.compile(r"\b(tomorrow)\b", re.I), _tomorrow),
    (re.compile(r"\b(yesterday)\b", re.I), _yesterday),
    (re.compile(rf"\bnext\s+({_DAY_ALT})\b", re.I), _next_weekday),
    (re.compile(rf"\bthis\s+({_DAY_ALT})\b", re.I), _this_weekday),
    (re.compile(rf"\bon\s+({_FULL_DAY_ALT})\b", re.I), _on_weekday),
    (
        re.compile(r"\bin\s+(\d+|one|two|three|four|five|six|seven|eight|nine|ten|a|an)\s+(day|week|month)s?\b", re.I),
        _in_offset,
    ),
    (re.compile(r"\bnext\s+(week|month|year)\b", re.I), _next_range),
    (re.compile(r"\bthis\s+(week|month|year)\b", re.I), _this_range),
    (
        re.compile(r"\bat\s+(\d{1,2})(?::(\d{2}))?(?:\s*(am|pm|a\.m\.|p\.m\.))?(?!\w)", re.I),
        _at_time,
    ),
    (re.compile(r"\bin\s+the\s+(morning|afternoon|evening|night)\b", re.I), _part_of_day),
    (re.compile(rf"\b({_MONTH_ALT})\s+(\d{{1,2}})(?:st|nd|rd|th)?\b", re.I), _month_day),
]

_QUICK_PATTERNS = [
    re.compile(r"\b(today|tomorrow|yesterday|tonight)\b", re.I),
    re.compile(r"\b(next|this)\s+(week|month|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b", re.I),
    re.compile(r"\bin\s+\d+\s+(day|week|month)s?\b", re.I),
    re.compile(r"\bat\s+\d{1,2}\s*(am|pm)?\b", re.I),
    re.compile(
        r"\b(january|february|march|april|may|june|july|august|september|october|november|december)\s+\d{1,2}\b",
        re.I,
    ),
]


# ============================================================================
# Public API
# ============================================================================

def parse_temporal_expressions(text: str, now: Optional[datetime] = None) -> TemporalParse:
    """Every temporal expression in text, deduplicated by label, in text order."""
    if not text or not isinstance(text, str):
        return TemporalParse()

    now = now or datetime.now()
    expressions: List[TemporalExpression] = []
    seen_labels = set()

    for regex, handler in TEMPORAL_PATTERNS:
        for match in regex.finditer(text):
            expr = handler(match, now)
            if expr is None or expr.label in seen_labels:
                continue
            seen_labels.add(expr.label)
            expr.matched_text = match.group(0)
            expr.position = match.start()
            expressions.append(expr)

    expressions.sort(key=lambda e: e.position)
    return TemporalParse(expressions=expressions)


def has_temporal_indicators(text: str) -> bool:
    """Cheap pre-check, safe to run on every entry before anything heavier."""
    if not text:
        return False
    return any(p.search(text) for p in _QUICK_PATTERNS)


def get_primary_temporal(text: str, now: Optional[datetime] = None) -> Optional[TemporalExpression]:
    """Most useful expression: first specific date, else first range, else first of any kind."""
    expressions = parse_temporal_expressions(text, now=now).expressions
    if not expressions:
        return None
    for kind in ("specific", "range"):
        for expr in expressions:
            if expr.type == kind:
                return expr
    return expressions[0]
