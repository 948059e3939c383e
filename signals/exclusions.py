# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Exclusion registry — "stop showing me this" for patterns and gaps.

An exclusion names a pattern type (a detector's pattern key, or a life
domain for gap prompts) plus an optional context. An empty context
blocks the whole pattern type; otherwise every context key must match.
Exclusions expire after 30 days unless permanent, and are never edited,
only added or removed.

Stored under users/{uid}/insight_exclusions/.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from core.events import Events, bus
from core.schemas import Exclusion
from core.store import DocumentStore, get_store

logger = logging.getLogger("hearth.signals.exclusions")

COLLECTION = "insight_exclusions"
EXCLUSION_TTL_DAYS = 30
DEFAULT_REASON = "user_dismissed"


def is_active(exclusion: Exclusion, now: Optional[datetime] = None) -> bool:
    if exclusion.permanent:
        return True
    now = now or datetime.now()
    return exclusion.expires_at is not None and exclusion.expires_at > now


def add_exclusion(
    user_id: str,
    pattern_type: str,
    context: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None,
    permanent: bool = False,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> Exclusion:
    """Record a new exclusion and return it."""
    store = store or get_store()
    now = now or datetime.now()

    exclusion = Exclusion(
        id=store.new_id(),
        pattern_type=pattern_type,
        context=dict(context or {}),
        reason=reason or DEFAULT_REASON,
        permanent=permanent,
        excluded_at=now,
        expires_at=None if permanent else now + timedelta(days=EXCLUSION_TTL_DAYS),
    )
    store.set(user_id, COLLECTION, exclusion.id, exclusion.to_doc())

    logger.info("Added exclusion for pattern %s (user %s, permanent=%s)", pattern_type, user_id, permanent)
    bus.emit(Events.EXCLUSION_ADDED, {
        "user_id": user_id,
        "exclusion_id": exclusion.id,
        "pattern_type": pattern_type,
        "permanent": permanent,
    }, source="signals.exclusions")
    return exclusion


def _load_all(user_id: str, store: DocumentStore, pattern_type: Optional[str] = None) -> List[Exclusion]:
    where = {"pattern_type": pattern_type} if pattern_type is not None else None
    return [Exclusion.model_validate(d) for d in store.list(user_id, COLLECTION, where=where)]


def is_pattern_excluded(
    user_id: str,
    pattern_type: str,
    context: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> bool:
    """True if an active exclusion covers this pattern type in this context."""
    store = store or get_store()
    context = context or {}
    for exclusion in _load_all(user_id, store, pattern_type):
        if not is_active(exclusion, now):
            continue
        if not exclusion.context:
            return True
        if all(context.get(k) == v for k, v in exclusion.context.items()):
            return True
    return False


def get_active_exclusions(
    user_id: str,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> List[Exclusion]:
    store = store or get_store()
    return [e for e in _load_all(user_id, store) if is_active(e, now)]


def remove_exclusion(user_id: str, exclusion_id: str, store: Optional[DocumentStore] = None) -> bool:
    store = store or get_store()
    removed = store.delete(user_id, COLLECTION, exclusion_id)
    if removed:
        logger.info("Removed exclusion %s (user %s)", exclusion_id, user_id)
    else:
        logger.warning("Exclusion %s not found (user %s)", exclusion_id, user_id)
    return removed
