# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Gap prompt safety — keep prompts from adding pressure during hard times.

Three gates, each usable on its own:
    should_show_gap_prompt     master switch from the longitudinal risk check
                               (fails closed: a broken check means no prompt)
    filter_gaps_for_safety     drops a domain whose latest entry is safety-flagged
    get_prompt_style_for_domain  "gentle" when the latest entry carries
                               warning indicators

Only the most recent entry of a domain matters. An older flagged entry
stops suppressing the domain once a newer unflagged one exists, and
warning indicators alone never suppress anything.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from core.schemas import EngagementPreferences, GapRecord, RiskAssessment
from nexus.risk import EntryLike, check_longitudinal_risk, entry_field, entry_time

logger = logging.getLogger("hearth.nexus.safety")

GENTLE_STYLE = "gentle"

RiskCheck = Callable[[Sequence[EntryLike]], Union[RiskAssessment, Mapping[str, Any]]]


def get_most_recent_entry(entries: Optional[Sequence[EntryLike]]) -> Optional[EntryLike]:
    """Latest entry by created_at; entries without a usable date are ignored."""
    latest = None
    latest_time = None
    for entry in entries or []:
        when = entry_time(entry)
        if when is None:
            continue
        if latest_time is None or when > latest_time:
            latest, latest_time = entry, when
    return latest


def should_show_gap_prompt(
    user_id: str,
    recent_entries: Sequence[EntryLike],
    risk_check: Optional[RiskCheck] = None,
) -> bool:
    """True only if the risk check runs cleanly and reports no risk."""
    risk_check = risk_check or check_longitudinal_risk
    try:
        risk = risk_check(recent_entries)
        if isinstance(risk, Mapping):
            risk = RiskAssessment.model_validate(risk)
        return not risk.is_at_risk
    except Exception as e:
        logger.error("Risk check failed for user %s, suppressing gap prompts: %s", user_id, e)
        return False


def filter_gaps_for_safety(
    gaps: Sequence[GapRecord],
    domain_entry_map: Mapping[str, Sequence[EntryLike]],
) -> List[GapRecord]:
    kept = []
    for gap in gaps:
        latest = get_most_recent_entry(domain_entry_map.get(gap.domain))
        if latest is not None and entry_field(latest, "safety_flagged", False) is True:
            logger.debug("Suppressing gap prompt for crisis-adjacent domain %s", gap.domain)
            continue
        kept.append(gap)
    return kept


def get_prompt_style_for_domain(
    domain: str,
    domain_entries: Optional[Sequence[EntryLike]],
    preferences: Union[EngagementPreferences, Dict[str, Any], None],
) -> Optional[str]:
    """Forced "gentle", else the user's preferred style, else None."""
    latest = get_most_recent_entry(domain_entries)
    if latest is not None and entry_field(latest, "has_warning_indicators", False):
        return GENTLE_STYLE
    if preferences is None:
        return None
    if isinstance(preferences, Mapping):
        return preferences.get("preferred_style") or None
    return preferences.preferred_style or None
