# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Gap prompt generator — turns the top domain gap into one gentle,
non-judgmental journaling prompt.

Pipeline (generate_gap_prompt):
    1. entitlement check, fail closed (gap detection never runs if denied)
    2. optional longitudinal-risk gate (when recent_entries are supplied)
    3. detect gaps
    4. optional per-domain safety filter (when domain_entries are supplied)
    5. engagement preferences, tolerating absence
    6. drop snoozed domains
    7. single highest-scoring gap
    8. style: "gentle" if the domain's latest entry has warning indicators,
       else weighted random (70% acceptance history, 30% uniform)
    9. render template + relative time + seasonal sentence

No template may contain a JUDGMENTAL_WORDS term. tests/test_prompts.py
checks every one.
"""

import logging
import random
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from core.events import Events, bus
from core.schemas import EngagementPreferences, Entitlement, GapPrompt, GapRecord, to_local_naive
from core.store import DocumentStore
from nexus.engagement import PROMPT_STYLES, get_engagement_preferences, is_domain_snoozed
from nexus.entitlements import GAP_PROMPTS_FEATURE, check_entitlement
from nexus.gaps import detect_gaps
from nexus.risk import EntryLike
from nexus.safety import (
    GENTLE_STYLE, RiskCheck, filter_gaps_for_safety, get_prompt_style_for_domain, should_show_gap_prompt,
)

logger = logging.getLogger("hearth.nexus.prompts")

PREFERRED_WEIGHT = 0.7
EXPLORATION_WEIGHT = 0.3

JUDGMENTAL_WORDS = [
    "neglecting", "ignoring", "failing", "should", "must",
    "need to", "have to", "ought to", "supposed to",
]

_JUDGMENTAL_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(w).replace(r"\ ", r"\s+") for w in JUDGMENTAL_WORDS) + r")\b",
    re.I,
)

PROMPT_TEMPLATES: Dict[str, Dict[str, List[str]]] = {
    "work": {
        "reflective": [
            "It's been {timeframe} since you wrote about work. What's your relationship with your professional life looking like these days?",
            "When you think about your professional world, what comes to mind right now?",
        ],
        "exploratory": [
            "If you could shift one thing about your work situation, what would feel most meaningful?",
            "What's something about your career that you're curious about exploring further?",
        ],
        "gratitude": [
            "What's one thing about your work you appreciate that you might not often acknowledge?",
            "Think about a recent work moment that went well. What made it good?",
        ],
        "action": [
            "What's one small professional step you could explore this week?",
            "If you had an extra hour at work this week, how would you use it?",
        ],
        "gentle": [
            "No pressure at all. If work has been on your mind, what's one word for how it feels today?",
            "Whenever you're ready, what's something small about your working days you'd like to set down here?",
        ],
    },
    "relationships": {
        "reflective": [
            "It's been {timeframe} since you reflected on your relationships. How are your connections with people feeling lately?",
            "When you think about the people in your life, who comes to mind first? What's that about?",
        ],
        "exploratory": [
            "What's a relationship in your life you'd like to understand better?",
            "If you could strengthen one connection, which would it be and why?",
        ],
        "gratitude": [
            "Who's someone you're grateful for right now? What makes that relationship special?",
            "Think about a recent interaction that left you feeling good. What happened?",
        ],
        "action": [
            "What's one small thing you could do this week to nurture a relationship that matters to you?",
            "Is there someone you've been meaning to reach out to? What's holding you back?",
        ],
        "gentle": [
            "If it feels okay, who's someone that has been a comfort to you lately?",
            "There's no right answer here. How are things with the people around you?",
        ],
    },
    "health": {
        "reflective": [
            "It's been {timeframe} since you wrote about your health. How's your body feeling these days?",
            "What does wellness look like for you right now? Take a moment to check in with yourself.",
        ],
        "exploratory": [
            "If you could change one thing about how you take care of yourself, what would it be?",
            "What's your body been telling you lately that you might not have been listening to?",
        ],
        "gratitude": [
            "What's one thing your body does well that you might take for granted?",
            "Think about a time recently when you felt physically good. What contributed to that?",
        ],
        "action": [
            "What's one small wellness step you could try this week?",
            "What's something enjoyable you could do for your body today?",
        ],
        "gentle": [
            "Take a breath. How is your body doing right now, in this moment?",
            "If it helps, what's one kind thing you could offer yourself today?",
        ],
    },
    "creativity": {
        "reflective": [
            "It's been {timeframe} since you explored your creative side. What creative impulses have you been noticing?",
            "When you think about creativity, what feelings come up for you right now?",
        ],
        "exploratory": [
            "If time and resources weren't a factor, what creative project would excite you?",
            "What's a creative hobby you've been curious about but haven't tried yet?",
        ],
        "gratitude": [
            "What's a creative moment from your past that still brings you joy?",
            "What creative abilities do you have that you might not give yourself enough credit for?",
        ],
        "action": [
            "What's one small creative thing you could do in the next few days?",
            "Could you spend 15 minutes this week on something creative, just for fun?",
        ],
        "gentle": [
            "No expectations here. Has anything, big or small, sparked your curiosity lately?",
            "If you feel like it, what's an image that matches your mood today?",
        ],
    },
    "spirituality": {
        "reflective": [
            "It's been {timeframe} since you reflected on your spiritual life. What's your inner landscape looking like?",
            "When you connect with what's meaningful to you, what comes up?",
        ],
        "exploratory": [
            "What questions about meaning or purpose have been on your mind lately?",
            "If you could deepen one aspect of your spiritual practice, what would it be?",
        ],
        "gratitude": [
            "What's something about your life right now that feels meaningful or purposeful?",
            "When was the last time you felt a sense of wonder? What was happening?",
        ],
        "action": [
            "What's one small practice of mindfulness or gratitude you could try this week?",
            "Could you take five minutes today for quiet reflection? What would you focus on?",
        ],
        "gentle": [
            "Whenever you're ready, what's bringing you a little peace these days?",
            "If it feels right, is there a quiet moment from this week you'd like to remember?",
        ],
    },
    "personal-growth": {
        "reflective": [
            "It's been {timeframe} since you thought about personal growth. How have you been growing lately, even in small ways?",
            "What have you learned about yourself recently that surprised you?",
        ],
        "exploratory": [
            "If you could develop one skill or quality, what would feel most valuable to you right now?",
            "What's an area of your life where you feel like you're on the edge of a breakthrough?",
        ],
        "gratitude": [
            "What's a challenge you've overcome that you can appreciate now?",
            "What personal quality are you developing that you feel good about?",
        ],
        "action": [
            "What's one small learning goal you could set for this week?",
            "Is there a book, podcast, or conversation that might help you grow right now?",
        ],
        "gentle": [
            "Be kind to yourself here. What's one thing you've handled lately, even if it felt small?",
            "No rush. What's something you're learning about yourself right now?",
        ],
    },
    "family": {
        "reflective": [
            "It's been {timeframe} since you wrote about family. How are things with your family feeling right now?",
            "When you think about your family, what's the first thing that comes to mind?",
        ],
        "exploratory": [
            "What's something about your family dynamic you'd like to understand better?",
            "If you could improve one thing about your family relationships, what would it be?",
        ],
        "gratitude": [
            "What's one thing about your family you're grateful for today?",
            "Think about a family moment that made you smile recently. What happened?",
        ],
        "action": [
            "What's one small thing you could do this week to connect with a family member?",
            "Is there a family tradition or activity you've been wanting to revisit?",
        ],
        "gentle": [
            "If you'd like to, how are things at home feeling for you?",
            "There's no right answer. Who in your family has been on your mind?",
        ],
    },
    "finances": {
        "reflective": [
            "It's been {timeframe} since you reflected on your finances. How's your relationship with money feeling right now?",
            "When you think about your financial situation, what emotions come up?",
        ],
        "exploratory": [
            "If you could change one thing about your financial habits, what would make the biggest difference?",
            "What's a financial goal that excites you rather than stresses you?",
        ],
        "gratitude": [
            "What's one financial decision you've made that you feel good about?",
            "What financial resource or stability do you have that you might overlook?",
        ],
        "action": [
            "What's one small financial step you could take this week?",
            "Could you spend 10 minutes this week reviewing one area of your finances?",
        ],
        "gentle": [
            "No judgment here. How are you feeling about money right now, in a word or two?",
            "If it helps to name it, is there a money worry that has been easing up or weighing on you?",
        ],
    },
}

# ((start month, day), (end month, day), label); first match wins
SEASONAL_CONTEXTS = [
    ((11, 20), (12, 31), "the holiday season"),
    ((1, 1), (1, 15), "the start of a new year"),
    ((6, 1), (8, 31), "the summer months"),
    ((3, 15), (4, 15), "the spring season"),
    ((9, 1), (9, 30), "the fall season"),
]

EntitlementCheck = Callable[[str, str], Union[Entitlement, Mapping[str, Any]]]
GapDetector = Callable[[str], Sequence[GapRecord]]


def contains_judgmental_language(text: str) -> bool:
    return bool(_JUDGMENTAL_RE.search(text or ""))


def get_seasonal_context(when: Union[date, datetime]) -> Optional[str]:
    key = (when.month, when.day)
    for start, end, label in SEASONAL_CONTEXTS:
        if start <= end:
            if start <= key <= end:
                return label
        elif key >= start or key <= end:
            return label
    return None


def format_relative_time(days: Optional[float]) -> str:
    if days is None:
        return "a while"
    if days <= 2:
        return "recently"
    if days <= 6:
        return "a few days"
    if days <= 13:
        return "about a week"
    if days <= 20:
        return "a couple of weeks"
    if days <= 29:
        return "about three weeks"
    if days <= 59:
        return "about a month"
    if days <= 89:
        return "a couple of months"
    return "a few months"


def select_prompt_style(
    preferences: Union[EngagementPreferences, Dict[str, Any], None],
    rng: Optional[random.Random] = None,
) -> str:
    """
    Weighted pick over PROMPT_STYLES.

    Each style gets 0.7 * (its share of accepted prompts) + 0.3 / 4, so
    favourites dominate without starving the rest. No history means uniform.
    """
    rng = rng or random
    if isinstance(preferences, Mapping):
        preferences = EngagementPreferences.model_validate(preferences)
    rates = preferences.style_acceptance_rates if preferences else {}

    total = sum(rates.get(s, 0) for s in PROMPT_STYLES)
    if total <= 0:
        return rng.choice(PROMPT_STYLES)

    weights = [
        PREFERRED_WEIGHT * rates.get(style, 0) / total + EXPLORATION_WEIGHT / len(PROMPT_STYLES)
        for style in PROMPT_STYLES
    ]
    return rng.choices(PROMPT_STYLES, weights=weights)[0]


def get_prompt_for_domain(
    domain: str,
    style: str,
    last_mention_date: Optional[datetime] = None,
    seasonal_context: Optional[str] = None,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> str:
    templates = PROMPT_TEMPLATES.get(domain, {}).get(style)
    if not templates:
        return f"What's been on your mind about your {domain.replace('-', ' ')} lately?"

    template = (rng or random).choice(templates)
    days = None
    if last_mention_date is not None:
        elapsed = (now or datetime.now()) - to_local_naive(last_mention_date)
        days = int(elapsed.total_seconds() // 86400)
    text = template.replace("{timeframe}", format_relative_time(days))

    if seasonal_context:
        text += f" With {seasonal_context} here, this might be a good time to reflect."
    return text


def _is_entitled(result: Union[Entitlement, Mapping[str, Any], None]) -> bool:
    if result is None:
        return False
    if isinstance(result, Mapping):
        return bool(result.get("entitled"))
    return bool(result.entitled)


def generate_gap_prompt(
    user_id: str,
    current_date: Optional[datetime] = None,
    entitlement_check: Optional[EntitlementCheck] = None,
    gap_detector: Optional[GapDetector] = None,
    recent_entries: Optional[Sequence[EntryLike]] = None,
    domain_entries: Optional[Mapping[str, Sequence[EntryLike]]] = None,
    risk_check: Optional[RiskCheck] = None,
    rng: Optional[random.Random] = None,
    store: Optional[DocumentStore] = None,
) -> Optional[GapPrompt]:
    """
    Build at most one gap prompt for the user, or None.

    Args:
        user_id: User to prompt
        current_date: "Now" for snoozes, seasons and relative time
        entitlement_check: (user_id, feature) -> Entitlement; default reads the subscription
        gap_detector: (user_id) -> ranked gaps; default detect_gaps
        recent_entries: Enables the longitudinal-risk gate
        domain_entries: {domain: entries}; enables the per-domain safety filter
            and the gentle style override
        risk_check: Risk collaborator for the master gate
        rng: Random source for style and template choice
    """
    now = current_date or datetime.now()
    rng = rng or random.Random()
    if entitlement_check is None:
        def entitlement_check(uid, feature):
            return check_entitlement(uid, feature, store=store)
    if gap_detector is None:
        def gap_detector(uid):
            return detect_gaps(uid, store=store)

    try:
        if not _is_entitled(entitlement_check(user_id, GAP_PROMPTS_FEATURE)):
            return None
    except Exception as e:
        logger.warning("Entitlement check failed for user %s, no gap prompt: %s", user_id, e)
        return None

    if recent_entries is not None and not should_show_gap_prompt(user_id, recent_entries, risk_check):
        return None

    try:
        gaps = list(gap_detector(user_id) or [])
    except Exception as e:
        logger.error("Gap detection failed for user %s: %s", user_id, e)
        return None

    if domain_entries is not None:
        gaps = filter_gaps_for_safety(gaps, domain_entries)

    preferences = get_engagement_preferences(user_id, store=store)
    gaps = [g for g in gaps if not is_domain_snoozed(g.domain, preferences, now=now)]
    if not gaps:
        return None

    top = max(gaps, key=lambda g: g.gap_score)

    style = None
    if domain_entries is not None:
        style = get_prompt_style_for_domain(top.domain, domain_entries.get(top.domain), None)
    safety_adjusted = style == GENTLE_STYLE
    if not safety_adjusted:
        style = select_prompt_style(preferences, rng=rng)

    seasonal = get_seasonal_context(now)
    prompt = GapPrompt(
        domain=top.domain,
        prompt_text=get_prompt_for_domain(
            top.domain, style, top.last_mention_date, seasonal, now=now, rng=rng,
        ),
        prompt_style=style,
        gap_score=top.gap_score,
        last_mention_date=top.last_mention_date,
        seasonal=seasonal,
        personalized=bool(preferences and preferences.style_acceptance_rates),
        safety_adjusted=safety_adjusted,
    )

    logger.info("Generated %s gap prompt for user %s (domain %s)", style, user_id, top.domain)
    bus.emit(Events.GAP_PROMPT_GENERATED, {
        "user_id": user_id,
        "domain": top.domain,
        "prompt_style": style,
        "gap_score": top.gap_score,
    }, source="nexus.prompts")
    return prompt
