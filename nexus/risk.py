# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Longitudinal risk — is the user's mood trending somewhere worrying?

Two-tier check over recent entries:
    sustained  14-day window, least-squares slope of mood per entry
    acute      7-day subset (3+ entries), steeper slope threshold
plus a floor on the 14-day average mood. Any one trips is_at_risk.

Fewer than 5 entries in the window means "insufficient_data", not risk.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from core.schemas import JournalEntry, RiskAssessment, to_local_naive

logger = logging.getLogger("hearth.nexus.risk")

WINDOW_DAYS = 14
ACUTE_WINDOW_DAYS = 7
MINIMUM_ENTRIES = 5
MINIMUM_ACUTE_ENTRIES = 3
SLOPE_THRESHOLD = -0.03
ACUTE_SLOPE_THRESHOLD = -0.05
AVG_MOOD_THRESHOLD = 0.30
NEUTRAL_MOOD = 0.5

EntryLike = Union[JournalEntry, Mapping[str, Any]]


# ============================================================================
# Entry accessors (entries arrive as models or raw dicts)
# ============================================================================

def entry_field(entry: EntryLike, name: str, default: Any = None) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(name, default)
    return getattr(entry, name, default)


def entry_time(entry: EntryLike) -> Optional[datetime]:
    """created_at as a naive local datetime, or None if missing/unparseable."""
    value = entry_field(entry, "created_at")
    if value is None:
        return None
    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, (int, float)):
            parsed = datetime.fromtimestamp(value / 1000 if value > 1e11 else value)
        else:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    return to_local_naive(parsed)


def entry_mood(entry: EntryLike) -> float:
    score = entry_field(entry, "mood_score")
    if score is None:
        analysis = entry_field(entry, "analysis") or {}
        if isinstance(analysis, Mapping):
            score = analysis.get("mood_score")
    return NEUTRAL_MOOD if score is None else float(score)


def _slope(values: Sequence[float]) -> float:
    """Least-squares slope against index 0..n-1."""
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_x2 = n * (n - 1) * (2 * n - 1) / 6
    sum_y = sum(values)
    sum_xy = sum(x * y for x, y in enumerate(values))
    return (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)


def _reason(acute: bool, sustained: bool, low: bool) -> Optional[str]:
    if acute and low:
        return "acute_decline_with_low_mood"
    if acute:
        return "acute_decline"
    if sustained and low:
        return "sustained_decline_with_low_mood"
    if sustained:
        return "sustained_decline"
    if low:
        return "low_average_mood"
    return None


def check_longitudinal_risk(entries: Sequence[EntryLike], now: Optional[datetime] = None) -> RiskAssessment:
    """Assess mood trend over the last 14 days of entries."""
    now = now or datetime.now()
    window_start = now - timedelta(days=WINDOW_DAYS)
    acute_start = now - timedelta(days=ACUTE_WINDOW_DAYS)

    dated = [(entry_time(e), e) for e in entries or []]
    in_window = sorted(
        ((t, e) for t, e in dated if t is not None and t > window_start),
        key=lambda pair: pair[0],
    )

    if len(in_window) < MINIMUM_ENTRIES:
        logger.debug(
            "Longitudinal risk check skipped: %d entries in window (need %d)",
            len(in_window), MINIMUM_ENTRIES,
        )
        return RiskAssessment(entries_analyzed=len(in_window), window_days=WINDOW_DAYS)

    moods = [entry_mood(e) for _, e in in_window]
    avg_mood = sum(moods) / len(moods)
    sustained_slope = _slope(moods)

    acute_moods: List[float] = [entry_mood(e) for t, e in in_window if t > acute_start]
    acute_slope = _slope(acute_moods) if len(acute_moods) >= MINIMUM_ACUTE_ENTRIES else 0.0

    flags: Dict[str, bool] = {
        "is_sustained_decline": sustained_slope < SLOPE_THRESHOLD,
        "is_acute_decline": acute_slope < ACUTE_SLOPE_THRESHOLD,
        "is_low_avg_mood": avg_mood < AVG_MOOD_THRESHOLD,
    }
    is_at_risk = any(flags.values())

    assessment = RiskAssessment(
        is_at_risk=is_at_risk,
        reason=_reason(flags["is_acute_decline"], flags["is_sustained_decline"], flags["is_low_avg_mood"]),
        entries_analyzed=len(in_window),
        window_days=WINDOW_DAYS,
        metrics={
            "avg_mood": round(avg_mood, 2),
            "sustained_slope": round(sustained_slope, 3),
            "acute_slope": round(acute_slope, 3),
            "acute_entries_count": len(acute_moods),
        },
        thresholds={
            "avg_mood": AVG_MOOD_THRESHOLD,
            "sustained_slope": SLOPE_THRESHOLD,
            "acute_slope": ACUTE_SLOPE_THRESHOLD,
        },
        flags=flags,
    )
    if is_at_risk:
        logger.info("Longitudinal risk detected: %s %s", assessment.reason, assessment.metrics)
    return assessment
