# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Insight rotation — drip-feed a big batch of insights over several days.

A backfill can produce dozens of insights at once. Instead of dumping
them all, rank by confidence and release 7 per day at 08:00:

    rank 0..6   -> today 08:00
    rank 7..13  -> tomorrow 08:00
    ...

Visibility is a pure function of "now" against scheduled_reveal_date.
Insights that aren't backfilled, or have no date, are always visible.
"revealed" is separate bookkeeping, set only when the user views them.

Stored as users/{uid}/nexus/insights.json -> {"active": [...]}.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from core.events import Events, bus
from core.schemas import HearthError, ScheduledInsight
from core.store import DocumentStore, get_store

logger = logging.getLogger("hearth.nexus.rotation")

INSIGHTS_PER_DAY = 7
REVEAL_HOUR = 8
DEFAULT_CONFIDENCE = 0.5

COLLECTION = "nexus"
INSIGHTS_DOC = "insights"

InsightLike = Union[ScheduledInsight, Mapping[str, Any]]


def _coerce(insight: InsightLike) -> ScheduledInsight:
    if isinstance(insight, ScheduledInsight):
        return insight
    return ScheduledInsight.model_validate(dict(insight))


def _confidence(insight: ScheduledInsight) -> float:
    return insight.confidence_score or insight.confidence or DEFAULT_CONFIDENCE


def is_visible(insight: ScheduledInsight, now: datetime) -> bool:
    if not insight.is_backfilled or insight.scheduled_reveal_date is None:
        return True
    return insight.scheduled_reveal_date <= now


def schedule_insight_reveals(
    insights: Iterable[InsightLike],
    now: Optional[datetime] = None,
) -> List[ScheduledInsight]:
    """Rank by confidence and stamp reveal dates, 7 per day at 08:00."""
    now = now or datetime.now()
    ranked = sorted((_coerce(i) for i in insights), key=_confidence, reverse=True)

    scheduled = []
    for index, insight in enumerate(ranked):
        day = index // INSIGHTS_PER_DAY
        reveal = (now + timedelta(days=day)).replace(hour=REVEAL_HOUR, minute=0, second=0, microsecond=0)
        scheduled.append(insight.model_copy(update={
            "is_backfilled": True,
            "backfilled_at": now,
            "scheduled_reveal_date": reveal,
            "revealed": False,
        }))
    return scheduled


def get_visible_insights(insights: Iterable[InsightLike], now: Optional[datetime] = None) -> List[ScheduledInsight]:
    now = now or datetime.now()
    return [i for i in map(_coerce, insights) if is_visible(i, now)]


def get_insight_counts(insights: Iterable[InsightLike], now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or datetime.now()
    items = [_coerce(i) for i in insights]
    visible = sum(1 for i in items if is_visible(i, now))
    return {"visible": visible, "pending": len(items) - visible, "total": len(items)}


def get_next_reveal_info(insights: Iterable[InsightLike], now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """Earliest pending reveal and how many insights share its day, or None."""
    now = now or datetime.now()
    pending = [
        i.scheduled_reveal_date for i in map(_coerce, insights)
        if not is_visible(i, now)
    ]
    if not pending:
        return None

    next_date = min(pending)
    return {
        "date": next_date,
        "count": sum(1 for d in pending if d.date() == next_date.date()),
        "is_today": next_date.date() == now.date(),
        "is_tomorrow": next_date.date() == (now + timedelta(days=1)).date(),
    }


def get_todays_new_insights(insights: Iterable[InsightLike], now: Optional[datetime] = None) -> List[ScheduledInsight]:
    """Unrevealed backfilled insights scheduled for today's calendar day."""
    today = (now or datetime.now()).date()
    return [
        i for i in map(_coerce, insights)
        if i.is_backfilled and i.scheduled_reveal_date is not None
        and not i.revealed and i.scheduled_reveal_date.date() == today
    ]


# ============================================================================
# Persistence
# ============================================================================

def load_scheduled_insights(user_id: str, store: Optional[DocumentStore] = None) -> List[ScheduledInsight]:
    doc = (store or get_store()).get(user_id, COLLECTION, INSIGHTS_DOC) or {}
    return [ScheduledInsight.model_validate(i) for i in doc.get("active") or []]


def save_scheduled_insights(
    user_id: str,
    insights: Sequence[InsightLike],
    store: Optional[DocumentStore] = None,
) -> List[ScheduledInsight]:
    items = [_coerce(i) for i in insights]
    (store or get_store()).merge(user_id, COLLECTION, INSIGHTS_DOC, {"active": [i.to_doc() for i in items]})

    logger.info("Saved %d scheduled insight(s) for user %s", len(items), user_id)
    bus.emit(Events.INSIGHTS_SCHEDULED, {
        "user_id": user_id,
        "count": len(items),
    }, source="nexus.rotation")
    return items


def mark_insights_revealed(
    user_id: str,
    insight_ids: Iterable[str],
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> int:
    """Flag the given insights revealed in a single write. Returns how many changed."""
    wanted = set(insight_ids)
    if not user_id or not wanted:
        return 0
    store = store or get_store()
    stamp = (now or datetime.now()).isoformat()

    changed = []
    with store.transaction(user_id) as txn:
        doc = txn.get(COLLECTION, INSIGHTS_DOC)
        if doc is None:
            return 0
        active = doc.get("active") or []
        for item in active:
            if item.get("id") in wanted and not item.get("revealed"):
                item["revealed"] = True
                item["revealed_at"] = stamp
                changed.append(item["id"])
        if changed:
            txn.merge(COLLECTION, INSIGHTS_DOC, {"active": active})

    if changed:
        logger.info("Marked %d insight(s) revealed for user %s", len(changed), user_id)
        bus.emit(Events.INSIGHTS_REVEALED, {
            "user_id": user_id,
            "insight_ids": changed,
        }, source="nexus.rotation")
    return len(changed)


def check_pending_reveals(
    user_id: str,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> Dict[str, Any]:
    """Badge info. Any failure reads as nothing pending."""
    if not user_id:
        return {"has_pending": False, "count": 0}
    try:
        counts = get_insight_counts(load_scheduled_insights(user_id, store=store), now=now)
    except (HearthError, ValidationError) as e:
        logger.error("Failed to check pending reveals for user %s: %s", user_id, e)
        return {"has_pending": False, "count": 0}

    return {
        "has_pending": counts["pending"] > 0,
        "count": counts["pending"],
        "visible_count": counts["visible"],
        "total_count": counts["total"],
    }
