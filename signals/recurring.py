# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Recurring signal expander.

"Gym every Monday" becomes four separate dated signals instead of one
rule, so "what's on Thursday" is a plain date lookup and each occurrence
can be verified or dismissed on its own.

    generate_recurring_signals("every_monday", base, reference)
    # -> 4 Signals on the next four Mondays, occurrence_index 1..4
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from core.schemas import Signal
from signals.dates import WEEKDAYS, normalize_to_noon, normalize_token
from signals.temporal import sunday_index

logger = logging.getLogger("hearth.signals.recurring")

MAX_RECURRING_OCCURRENCES = 4
SCAN_LIMIT_DAYS = 30
INSTANCE_CONFIDENCE_SCALE = 0.95
INSTANCE_CONFIDENCE_FLOOR = 0.5
DEFAULT_BASE_CONFIDENCE = 0.7

MORNING_HOUR = 9
EVENING_HOUR = 19

_RECURRING_RE = re.compile(r"^(every_|weekly|daily|weekdays|weekends)")
_EVERY_WEEKDAY_RE = re.compile(
    r"^every_(sunday|monday|tuesday|wednesday|thursday|friday|saturday)$"
)

_TEXT_PATTERNS = [
    (re.compile(r"every\s+(monday|tuesday|wednesday|thursday|friday|saturday|sunday)", re.I),
     lambda m: f"every_{m.group(1).lower()}"),
    (re.compile(r"every\s+(morning|evening|night|day)", re.I),
     lambda m: f"every_{m.group(1).lower()}"),
    (re.compile(r"\b(weekly)\b", re.I), lambda m: "weekly"),
    (re.compile(r"\b(daily)\b", re.I), lambda m: "daily"),
    (re.compile(r"\b(weekdays)\b", re.I), lambda m: "weekdays"),
    (re.compile(r"\b(weekends)\b", re.I), lambda m: "weekends"),
]


def _daily(today: datetime, count: int, hour: Optional[int] = None) -> List[datetime]:
    dates = [today + timedelta(days=i) for i in range(1, count + 1)]
    if hour is not None:
        dates = [d.replace(hour=hour) for d in dates]
    return dates


def _scan(today: datetime, count: int, keep: Callable[[int], bool]) -> List[datetime]:
    """Walk forward day by day collecting matches, giving up after SCAN_LIMIT_DAYS."""
    dates: List[datetime] = []
    offset = 1
    while len(dates) < count and offset <= SCAN_LIMIT_DAYS:
        candidate = today + timedelta(days=offset)
        if keep(sunday_index(candidate)):
            dates.append(candidate)
        offset += 1
    return dates


def calculate_occurrences(
    pattern: str,
    reference: Optional[datetime] = None,
    count: int = MAX_RECURRING_OCCURRENCES,
) -> List[datetime]:
    """Next `count` dates for a recurrence token. Unknown tokens give []."""
    today = normalize_to_noon(reference or datetime.now())
    token = normalize_token(pattern or "")

    m = _EVERY_WEEKDAY_RE.match(token)
    if m:
        days_until = WEEKDAYS.index(m.group(1)) - sunday_index(today)
        if days_until <= 0:
            days_until += 7
        return [today + timedelta(days=days_until + 7 * i) for i in range(count)]

    if token == "weekly":
        return [today + timedelta(days=7 * i) for i in range(1, count + 1)]
    if token in ("daily", "every_day"):
        return _daily(today, count)
    if token == "every_morning":
        return _daily(today, count, hour=MORNING_HOUR)
    if token in ("every_evening", "every_night"):
        return _daily(today, count, hour=EVENING_HOUR)
    if token in ("weekdays", "every_weekday"):
        return _scan(today, count, lambda dow: 1 <= dow <= 5)
    if token in ("weekends", "every_weekend"):
        return _scan(today, count, lambda dow: dow in (0, 6))

    logger.warning("Unknown recurring pattern: %s", pattern)
    return []


def generate_recurring_signals(
    pattern: str,
    base: Signal,
    reference: Optional[datetime] = None,
) -> List[Signal]:
    """Independent Signal instances for the upcoming occurrences of pattern."""
    confidence = max(
        INSTANCE_CONFIDENCE_FLOOR,
        (base.confidence or DEFAULT_BASE_CONFIDENCE) * INSTANCE_CONFIDENCE_SCALE,
    )
    return [
        base.model_copy(update={
            "target_date": date,
            "is_recurring_instance": True,
            "recurring_pattern": pattern,
            "occurrence_index": index,
            "confidence": confidence,
        })
        for index, date in enumerate(calculate_occurrences(pattern, reference), start=1)
    ]


def is_recurring_pattern(token: Optional[str]) -> bool:
    if not token:
        return False
    return bool(_RECURRING_RE.match(normalize_token(token)))


def parse_recurring_pattern(text: str) -> Optional[str]:
    """Recurrence token mentioned in free text ("every Monday" -> "every_monday")."""
    if not text:
        return None
    for regex, fmt in _TEXT_PATTERNS:
        m = regex.search(text)
        if m:
            return fmt(m)
    return None
