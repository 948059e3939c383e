# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Gap prompt engagement — how the user responds to prompts, and what we
learn from it.

    users/{uid}/analytics/gap_engagement.json          EngagementPreferences
    users/{uid}/gap_engagement_history/{id}.json       EngagementRecord

accepted  bumps the style's acceptance count (feeds style selection)
snoozed   hides the domain for 7 days
dismissed is only recorded
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from core.events import Events, bus
from core.schemas import EngagementPreferences, EngagementRecord, HearthError, HearthValidationError
from core.store import DocumentStore, get_store
from nexus.analytics import COLLECTION as ANALYTICS
from nexus.gaps import LIFE_DOMAINS
from nexus.safety import GENTLE_STYLE

logger = logging.getLogger("hearth.nexus.engagement")

PROMPT_STYLES = ["reflective", "exploratory", "gratitude", "action"]
VALID_RESPONSES = ("accepted", "dismissed", "snoozed")
SNOOZE_DURATION_DAYS = 7

PREFERENCES_DOC = "gap_engagement"
HISTORY = "gap_engagement_history"


def get_engagement_preferences(
    user_id: str,
    store: Optional[DocumentStore] = None,
) -> Optional[EngagementPreferences]:
    """Stored preferences, or None when absent or unreadable."""
    try:
        doc = (store or get_store()).get(user_id, ANALYTICS, PREFERENCES_DOC)
        return EngagementPreferences.model_validate(doc) if doc else None
    except (HearthError, ValidationError) as e:
        logger.warning("Could not load engagement preferences for user %s: %s", user_id, e)
        return None


def is_domain_snoozed(
    domain: str,
    preferences: Union[EngagementPreferences, Dict[str, Any], None],
    now: Optional[datetime] = None,
) -> bool:
    if not preferences:
        return False
    if not isinstance(preferences, EngagementPreferences):
        preferences = EngagementPreferences.model_validate(preferences)
    until = preferences.snooze_until.get(domain)
    return until is not None and until > (now or datetime.now())


def track_engagement(
    user_id: str,
    domain: str,
    prompt_style: str,
    response: str,
    resulted_in_entry: bool = False,
    timestamp: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> EngagementRecord:
    """
    Record a response to a gap prompt and update preferences.

    Raises:
        HearthValidationError: unknown domain, style or response.
    """
    if domain not in LIFE_DOMAINS:
        raise HearthValidationError(f"Invalid domain: {domain!r}")
    if prompt_style not in PROMPT_STYLES and prompt_style != GENTLE_STYLE:
        raise HearthValidationError(f"Invalid prompt style: {prompt_style!r}")
    if response not in VALID_RESPONSES:
        raise HearthValidationError(f"Invalid response: {response!r}")

    store = store or get_store()
    timestamp = timestamp or datetime.now()
    record = EngagementRecord(
        domain=domain,
        prompt_style=prompt_style,
        response=response,
        resulted_in_entry=resulted_in_entry,
        timestamp=timestamp,
    )

    with store.transaction(user_id) as txn:
        txn.set(HISTORY, store.new_id(), record.to_doc())
        if response in ("accepted", "snoozed"):
            current = txn.get(ANALYTICS, PREFERENCES_DOC)
            prefs = EngagementPreferences.model_validate(current) if current else EngagementPreferences()
            if response == "accepted":
                rates = dict(prefs.style_acceptance_rates)
                rates[prompt_style] = rates.get(prompt_style, 0) + 1
                prefs = prefs.model_copy(update={"style_acceptance_rates": rates})
            else:
                snoozes = dict(prefs.snooze_until)
                snoozes[domain] = timestamp + timedelta(days=SNOOZE_DURATION_DAYS)
                prefs = prefs.model_copy(update={"snooze_until": snoozes})
            prefs = prefs.model_copy(update={"last_updated": timestamp})
            txn.set(ANALYTICS, PREFERENCES_DOC, prefs.to_doc())

    logger.info("Tracked gap engagement for user %s: %s %s (%s)", user_id, domain, response, prompt_style)
    bus.emit(Events.GAP_ENGAGEMENT_TRACKED, {
        "user_id": user_id,
        "domain": domain,
        "prompt_style": prompt_style,
        "response": response,
    }, source="nexus.engagement")
    return record
