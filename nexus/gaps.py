# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Domain gap detector — which life domains has the user stopped writing about?

    gap = (1 - coverage) * min(2 ** (days_since_mention / 14), 10) * (0 if excluded else 1)

Days are measured against the coverage snapshot's own last_updated
stamp, not the local clock. A domain that was never mentioned counts
from the user's first entry. Users with under two weeks of history get
no gaps at all.

Exclusion lookups fail open: if the registry can't be read, the domain
is scored as not excluded and a warning is logged.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from core.schemas import CoverageSnapshot, DomainCoverage, GapRecord
from core.store import DocumentStore
from nexus.analytics import get_topic_coverage
from signals.exclusions import is_pattern_excluded

logger = logging.getLogger("hearth.nexus.gaps")

LIFE_DOMAINS = [
    "work", "relationships", "health", "creativity",
    "spirituality", "personal-growth", "family", "finances",
]

GAP_THRESHOLD = 0.7
RECENCY_HALF_LIFE_DAYS = 14
MIN_HISTORY_DAYS = 14
MAX_RECENCY_PENALTY = 10.0

DOMAIN_CONFIG: Dict[str, Dict[str, Any]] = {
    "work": {
        "display_name": "Work & Career",
        "description": "Professional life, career goals, work relationships",
        "keywords": ["job", "career", "office", "meeting", "project", "deadline"],
    },
    "relationships": {
        "display_name": "Relationships",
        "description": "Friendships, romantic relationships, social connections",
        "keywords": ["friend", "partner", "date", "social"],
    },
    "health": {
        "display_name": "Health & Wellness",
        "description": "Physical health, exercise, medical, sleep",
        "keywords": ["exercise", "gym", "doctor", "sleep", "workout", "therapy"],
    },
    "creativity": {
        "display_name": "Creativity",
        "description": "Creative pursuits, artistic expression, hobbies",
        "keywords": ["painting", "drawing", "writing", "music", "art", "photography"],
    },
    "spirituality": {
        "display_name": "Spirituality",
        "description": "Spiritual practice, mindfulness, faith",
        "keywords": ["pray", "worship", "spiritual", "faith", "mindfulness", "gratitude"],
    },
    "personal-growth": {
        "display_name": "Personal Growth",
        "description": "Learning, self-improvement, skill development",
        "keywords": ["learn", "study", "read", "course", "self-improvement", "growth"],
    },
    "family": {
        "display_name": "Family",
        "description": "Family relationships, parenting, home life",
        "keywords": ["family", "parent", "child", "sibling", "home"],
    },
    "finances": {
        "display_name": "Finances",
        "description": "Money management, financial goals, budgeting",
        "keywords": ["budget", "invest", "save", "money", "finance", "debt"],
    },
}

CoverageSource = Callable[[str], Union[CoverageSnapshot, Dict[str, Any], None]]
ExclusionCheck = Callable[[str, str], bool]


def compute_gap_score(normalized_coverage: float, days_since_last_mention: float, is_excluded: bool) -> float:
    """0 means no gap. The recency factor doubles every 14 days, capped at 10."""
    if is_excluded:
        return 0.0
    recency = min(2 ** (days_since_last_mention / RECENCY_HALF_LIFE_DAYS), MAX_RECENCY_PENALTY)
    return (1 - normalized_coverage) * recency


def _days_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 86400


def detect_gaps(
    user_id: str,
    threshold: Optional[float] = None,
    max_results: Optional[int] = None,
    coverage_source: Optional[CoverageSource] = None,
    exclusion_check: Optional[ExclusionCheck] = None,
    store: Optional[DocumentStore] = None,
) -> List[GapRecord]:
    """
    Rank life domains whose gap score reaches threshold.

    Args:
        user_id: User to analyze
        threshold: Minimum score to report (default 0.7)
        max_results: Truncate the sorted list to this many
        coverage_source: (user_id) -> snapshot; default reads the analytics doc
        exclusion_check: (user_id, domain) -> bool; default asks the exclusion registry

    Returns:
        Gaps sorted by score, highest first. Empty when there's no snapshot,
        no first_entry_date, or under 14 days of history.
    """
    threshold = GAP_THRESHOLD if threshold is None else threshold
    if coverage_source is None:
        def coverage_source(uid):
            return get_topic_coverage(uid, store=store)
    if exclusion_check is None:
        def exclusion_check(uid, domain):
            return is_pattern_excluded(uid, domain, store=store)

    raw = coverage_source(user_id)
    if not raw:
        return []
    coverage = raw if isinstance(raw, CoverageSnapshot) else CoverageSnapshot.model_validate(raw)

    reference = coverage.last_updated or datetime.now()
    if coverage.first_entry_date is None:
        return []
    history_days = _days_between(reference, coverage.first_entry_date)
    if history_days < MIN_HISTORY_DAYS:
        return []

    gaps: List[GapRecord] = []
    for domain in LIFE_DOMAINS:
        data = coverage.domains.get(domain) or DomainCoverage()

        if data.last_mention_date is not None:
            days_since = _days_between(reference, data.last_mention_date)
        else:
            days_since = history_days

        excluded = False
        try:
            excluded = bool(exclusion_check(user_id, domain))
        except Exception as e:
            logger.warning(
                "Exclusion check failed for user %s domain %s, treating as non-excluded: %s",
                user_id, domain, e,
            )

        score = compute_gap_score(data.normalized_coverage, days_since, excluded)
        if score >= threshold:
            gaps.append(GapRecord(
                domain=domain,
                gap_score=score,
                last_mention_date=data.last_mention_date,
                normalized_coverage=data.normalized_coverage,
            ))

    gaps.sort(key=lambda g: g.gap_score, reverse=True)
    if max_results is not None:
        gaps = gaps[:max_results]

    logger.debug("Detected %d gap(s) for user %s", len(gaps), user_id)
    return gaps
