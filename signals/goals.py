# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Local goal detector — pattern-matched intentions, no model required.

Goal types:
    aspiration   "I want to...", "I'd like to..."
    habit_start  "I need to start...", "time to start..."
    habit_stop   "I need to stop...", "no more..."
    commitment   "I'm going to...", "I will...", "decided to..."
    recurring    any of the above with a frequency ("every day", "twice a week")

Detected goals can be promoted straight into the lifecycle engine with
promote_goals(); they start in "proposed" and dedupe by topic.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from signals.lifecycle import promote_signal

logger = logging.getLogger("hearth.signals.goals")

BASE_CONFIDENCE = 0.7
LENGTH_BONUS = 0.1
FREQUENCY_BONUS = 0.1
MIN_GOAL_LENGTH = 3
MAX_GOAL_LENGTH = 100

_FREQUENCY = (
    r"every\s+(?:day|morning|evening|night|week|month)|daily|weekly|monthly"
    r"|(?:once|twice|three\s+times)\s+a\s+(?:day|week|month)"
)

GOAL_PATTERNS = [
    (re.compile(
        r"\b(?:i\s+(?:want|wanna)\s+to|i(?:'d|\s+would)\s+(?:like|love)\s+to|my\s+goal\s+is\s+to)"
        r"\s+(.+?)(?:[.!?]|,\s*(?:but|and|so)|$)", re.I), "aspiration", 1),
    (re.compile(r"\b(?:i\s+wish\s+(?:i\s+could|to)|i\s+hope\s+to)\s+(.+?)(?:[.!?]|,|$)", re.I),
     "aspiration", 1),
    (re.compile(
        r"\b(?:i\s+(?:need|have)\s+to\s+start|i\s+should\s+(?:start|begin)|going\s+to\s+start)"
        r"\s+(.+?)(?:[.!?]|,|$)", re.I), "habit_start", 1),
    (re.compile(r"\b(?:time\s+to\s+start|need\s+to\s+begin)\s+(.+?)(?:[.!?]|,|$)", re.I),
     "habit_start", 1),
    (re.compile(
        r"\b(?:i\s+(?:need|have)\s+to\s+(?:stop|quit)|i\s+should\s+(?:stop|quit)|going\s+to\s+(?:stop|quit))"
        r"\s+(.+?)(?:[.!?]|,|$)", re.I), "habit_stop", 1),
    (re.compile(r"\b(?:no\s+more|done\s+with|cutting\s+out)\s+(.+?)(?:[.!?]|,|$)", re.I),
     "habit_stop", 1),
    (re.compile(
        r"\b(?:i(?:'m|\s+am)\s+going\s+to|i\s+will|i'll)\s+(.+?)(?:[.!?]|,\s*(?:but|because)|$)", re.I),
     "commitment", 1),
    (re.compile(r"\b(?:decided\s+to|committed\s+to|planning\s+to)\s+(.+?)(?:[.!?]|,|$)", re.I),
     "commitment", 1),
    (re.compile(rf"\b({_FREQUENCY})\b", re.I), "frequency", 0),
]

# Phrasing that reads like a goal but describes giving up or the past
NEGATIVE_PATTERNS = [
    re.compile(r"\bi\s+(?:used\s+to|wanted\s+to\s+but|tried\s+to\s+but)", re.I),
    re.compile(r"\bi\s+(?:couldn't|can't|won't\s+be\s+able\s+to)", re.I),
    re.compile(r"\bif\s+only\s+i\s+(?:could|had)", re.I),
    re.compile(r"\bi\s+(?:gave\s+up|stopped)\s+trying", re.I),
]

_QUICK_PATTERNS = [
    re.compile(r"\bi\s+(?:want|need|have)\s+to", re.I),
    re.compile(r"\bi(?:'m|'ll|\s+will|\s+am)\s+going\s+to", re.I),
    re.compile(r"\bmy\s+goal", re.I),
    re.compile(r"\bi\s+should\s+(?:start|stop)", re.I),
    re.compile(r"\bevery\s+(?:day|week|morning)", re.I),
    re.compile(r"\b(?:daily|weekly)\b", re.I),
]

_FREQUENCY_RE = re.compile(rf"\b({_FREQUENCY})\b", re.I)

# (matcher, type, label), first hit wins
_FREQUENCY_KINDS = [
    (re.compile(r"daily|every\s*(?:day|morning|evening|night)"), "daily", "Daily"),
    (re.compile(r"weekly|every\s*week|once\s*a\s*week"), "weekly", "Weekly"),
    (re.compile(r"monthly|every\s*month|once\s*a\s*month"), "monthly", "Monthly"),
    (re.compile(r"twice\s*a\s*day"), "twice_daily", "Twice daily"),
    (re.compile(r"twice\s*a\s*week"), "twice_weekly", "Twice weekly"),
    (re.compile(r"three\s*times\s*a\s*week"), "three_weekly", "3x weekly"),
]

CATEGORY_LABELS = {
    "aspiration": "Want to do",
    "habit_start": "Start doing",
    "habit_stop": "Stop doing",
    "commitment": "Committed to",
    "frequency": "Recurring",
}


@dataclass
class Frequency:
    type: str
    label: str


@dataclass
class DetectedGoal:
    text: str
    type: str
    confidence: float
    source_phrase: str
    frequency: Optional[Frequency] = None
    tentative: bool = False

    @property
    def topic(self) -> str:
        return self.text.lower()


def clean_goal_text(text: Optional[str]) -> Optional[str]:
    """Trim articles, filler and punctuation. None if outside 3..100 chars."""
    if not text:
        return None
    cleaned = text.strip()
    cleaned = re.sub(r"^(?:to\s+)?(?:a|an|the)\s+", "", cleaned, flags=re.I)
    cleaned = re.sub(r"[.,!?]+$", "", cleaned)
    cleaned = re.sub(r"\s+(?:now|today|soon|anymore|again)$", "", cleaned, flags=re.I)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    if not (MIN_GOAL_LENGTH <= len(cleaned) <= MAX_GOAL_LENGTH):
        return None
    return cleaned


def detect_frequency(text: str) -> Optional[Frequency]:
    m = _FREQUENCY_RE.search(text or "")
    if not m:
        return None
    freq = m.group(1).lower()
    for matcher, kind, label in _FREQUENCY_KINDS:
        if matcher.search(freq):
            return Frequency(kind, label)
    return Frequency("recurring", freq)


def extract_goals(text: str) -> List[DetectedGoal]:
    """Goals mentioned in text, highest confidence first."""
    if not text or not isinstance(text, str):
        return []

    normalized = text.strip()
    tentative = any(p.search(normalized) for p in NEGATIVE_PATTERNS)
    frequency = detect_frequency(normalized)

    goals: List[DetectedGoal] = []
    seen = set()
    for regex, goal_type, group in GOAL_PATTERNS:
        for match in regex.finditer(normalized):
            cleaned = clean_goal_text(match.group(group))
            if not cleaned or cleaned.lower() in seen:
                continue
            seen.add(cleaned.lower())

            goal = DetectedGoal(
                text=cleaned,
                type=goal_type,
                confidence=BASE_CONFIDENCE + (LENGTH_BONUS if len(cleaned) > 10 else 0.0),
                source_phrase=match.group(0).strip()[:80],
                tentative=tentative,
            )
            if frequency:
                goal.frequency = frequency
                goal.type = "recurring"
                goal.confidence += FREQUENCY_BONUS
            goals.append(goal)

    goals.sort(key=lambda g: -g.confidence)
    return goals


def has_goal_indicators(text: str) -> bool:
    if not text or not isinstance(text, str):
        return False
    return any(p.search(text) for p in _QUICK_PATTERNS)


def categorize_goal(goal: DetectedGoal) -> str:
    if goal.type == "recurring":
        return goal.frequency.label if goal.frequency else "Recurring"
    return CATEGORY_LABELS.get(goal.type, "Goal")


def promote_goals(user_id: str, entry_id: str, text: str, store=None) -> List[Dict]:
    """
    Feed detected goals into the lifecycle engine as "proposed" goals.

    Tentative goals are skipped. Returns one {"topic", "signal_id",
    "created"} dict per goal handled.
    """
    results = []
    for goal in extract_goals(text):
        if goal.tentative:
            continue
        metadata = {
            "goal_type": goal.type,
            "text": goal.text,
            "confidence": goal.confidence,
        }
        if goal.frequency:
            metadata["frequency"] = goal.frequency.type
        state, created = promote_signal(
            user_id, "goal", goal.topic, entry_id, metadata=metadata, store=store,
        )
        results.append({"topic": goal.topic, "signal_id": state.id, "created": created})
    if results:
        logger.info("Promoted %d goal(s) from entry %s", len(results), entry_id)
    return results
