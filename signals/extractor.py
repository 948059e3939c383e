# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Signal extraction — journal text in, dated Signals out.

One entry can yield several signals:
- feelings live on the day they are felt (usually today)
- events live on the day they happened
- plans live on the day they are scheduled

Flow:
    1. Cheap pre-screen (temporal or emotional wording), else no model call
    2. Comprehension collaborator proposes signals as JSON
    3. Each proposal is validated: confidence >= 0.4, resolvable date, known kind
    4. Recurring proposals ("every_monday") expand into dated instances

The collaborator is any callable (text, reference) -> raw response. The
default asks the local Ollama model. Whatever it returns, bad output
means zero signals, never an exception.
"""

import json
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from core import llm
from core.schemas import (
    DependencyUnavailableError, ExtractionResult, Signal, UnresolvableDateError,
)
from signals.dates import normalize_token, resolve_target_date
from signals.recurring import (
    calculate_occurrences, generate_recurring_signals, is_recurring_pattern,
)
from signals.temporal import has_temporal_indicators

logger = logging.getLogger("hearth.signals.extractor")

MIN_CONFIDENCE = 0.4
SIGNAL_KINDS = ("feeling", "event", "plan")
SAME_DAY_TOKENS = ("today", "now")

Comprehend = Callable[[str, datetime], Union[str, Dict[str, Any], None]]

EMOTIONAL_PATTERNS = [
    re.compile(
        r"\b(feel|feeling|felt)\s+(so\s+)?(good|bad|anxious|stressed|happy|sad|tired"
        r"|overwhelmed|excited|nervous|worried)\b",
        re.I,
    ),
    re.compile(r"\b(i'?m|i am)\s+(so\s+)?(anxious|stressed|excited|nervous|worried|happy|sad|overwhelmed)\b", re.I),
    re.compile(r"\b(nervous|anxious|stressed|worried|excited|dreading)\s+about\b", re.I),
    re.compile(r"\b(looking forward|can'?t wait|dreading)\b", re.I),
]

_FENCE_RE = re.compile(r"```(?:json)?", re.I)

SYSTEM_PROMPT = "You extract temporal signals from journal entries. Reply with JSON only."

PROMPT_TEMPLATE = """Analyze this journal entry and extract temporal signals.
The user recorded this entry NOW on {date} ({time_of_day}).

ENTRY:
"{text}"

Extract ALL signals - facts, feelings, or plans tied to specific days.

Return JSON:
{{
  "signals": [
    {{
      "type": "feeling" | "event" | "plan",
      "content": "brief description (3-5 words max)",
      "target_day": "today" | "yesterday" | "tomorrow" | "two_days_ago" | "next_monday" | "this_weekend" | "every_monday" | etc.,
      "sentiment": "positive" | "negative" | "neutral" | "anxious" | "excited" | "hopeful" | "dreading",
      "original_phrase": "exact quote from entry (10-20 words max)",
      "confidence": 0.0-1.0
    }}
  ],
  "reasoning": "brief explanation (1 sentence)"
}}

RULES:
1. FEELINGS live on the day they are FELT (usually today).
   "I'm nervous about tomorrow" -> feeling:nervous on TODAY.
2. EVENTS live on the day they HAPPENED or HAPPEN.
   "I have a doctor appointment tomorrow" -> plan:doctor_appointment on TOMORROW.
3. When ambiguous, feelings default to TODAY, events to the mentioned day.
4. Summaries of past days are events on that day.
   "Last week was exhausting" -> event:exhausting_week on LAST_WEEK.
5. Extract MULTIPLE signals when the entry mentions several days or emotions.
6. Recurring events ("every Monday", "weekly", "on weekdays") are ONE signal
   whose target_day is the pattern: every_monday, weekly, daily, weekdays, weekends."""


def has_emotional_content(text: str) -> bool:
    if not text:
        return False
    return any(p.search(text) for p in EMOTIONAL_PATTERNS)


def build_extraction_prompt(text: str, reference: datetime) -> str:
    hour = reference.hour
    time_of_day = "morning" if hour < 12 else "afternoon" if hour < 17 else "evening"
    return PROMPT_TEMPLATE.format(
        date=reference.strftime("%A, %B %d, %Y").replace(" 0", " "),
        time_of_day=time_of_day,
        text=text,
    )


def comprehend_with_llm(text: str, reference: datetime) -> str:
    """Default collaborator: ask the local model. Raises if it has nothing to say."""
    raw = llm.query(
        build_extraction_prompt(text, reference),
        system=SYSTEM_PROMPT,
        json_mode=True,
    )
    if not raw:
        raise DependencyUnavailableError("Comprehension model returned no response")
    return raw


def parse_comprehension_response(
    raw: Union[str, Dict[str, Any]],
) -> Tuple[Optional[List[Dict[str, Any]]], Optional[str]]:
    """
    Pull (proposals, reasoning) out of a model reply.

    Code fences are stripped. Returns (None, None) when the reply isn't a
    JSON object; a missing or malformed "signals" field reads as [].
    """
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(_FENCE_RE.sub("", str(raw)).strip())
        except json.JSONDecodeError:
            return None, None
    if not isinstance(data, dict):
        return None, None

    proposals = data.get("signals")
    if not isinstance(proposals, list):
        proposals = []
    reasoning = data.get("reasoning")
    return [p for p in proposals if isinstance(p, dict)], reasoning if isinstance(reasoning, str) else None


def normalize_signal(proposal: Dict[str, Any], reference: datetime) -> Optional[Signal]:
    """Validated Signal for one proposal, or None if it must be dropped."""
    try:
        confidence = float(proposal.get("confidence"))
    except (TypeError, ValueError):
        return None
    if not (MIN_CONFIDENCE <= confidence <= 1.0):
        return None

    kind = str(proposal.get("type", "")).lower()
    if kind not in SIGNAL_KINDS:
        return None

    token = proposal.get("target_day")
    if not isinstance(token, str) or not token.strip():
        return None

    recurring_pattern = None
    if is_recurring_pattern(token):
        recurring_pattern = normalize_token(token)
        first = calculate_occurrences(recurring_pattern, reference, count=1)
        target_date = first[0] if first else None
    else:
        target_date = resolve_target_date(token, reference)

    if target_date is None:
        logger.debug("Dropping signal: %s", UnresolvableDateError(token))
        return None

    try:
        return Signal(
            kind=kind,
            content=str(proposal.get("content") or "").strip() or kind,
            target_day=normalize_token(token),
            target_date=target_date,
            sentiment=proposal.get("sentiment"),
            original_phrase=proposal.get("original_phrase"),
            confidence=confidence,
            recurring_pattern=recurring_pattern,
        )
    except ValidationError as e:
        logger.debug("Dropping malformed signal %r: %s", proposal, e)
        return None


def expand_recurring(signals: List[Signal], reference: datetime) -> List[Signal]:
    """Replace each recurring signal with its dated instances."""
    expanded: List[Signal] = []
    for signal in signals:
        if signal.recurring_pattern and not signal.is_recurring_instance:
            expanded.extend(generate_recurring_signals(signal.recurring_pattern, signal, reference))
        else:
            expanded.append(signal)
    return expanded


def extract_signals(
    text: str,
    reference: Optional[datetime] = None,
    comprehend: Optional[Comprehend] = None,
) -> ExtractionResult:
    """
    Extract signals from journal entry text.

    Args:
        text: The entry text
        reference: "Now" for relative dates (default: datetime.now())
        comprehend: Collaborator returning the raw model reply

    Returns:
        ExtractionResult; zero signals on any collaborator failure.
    """
    reference = reference or datetime.now()
    collaborator = comprehend or comprehend_with_llm

    if not has_temporal_indicators(text) and not has_emotional_content(text):
        return ExtractionResult(reasoning="No temporal or emotional indicators detected")

    try:
        raw = collaborator(text, reference)
    except Exception as e:
        logger.warning("Signal extraction failed: %s", e)
        return ExtractionResult(reasoning=f"Extraction error: {e}")

    if not raw:
        logger.warning("Signal extraction: no response from comprehension step")
        return ExtractionResult(reasoning="AI extraction failed")

    proposals, reasoning = parse_comprehension_response(raw)
    if proposals is None:
        logger.error("Signal extraction: could not parse response: %.200s", raw)
        return ExtractionResult(reasoning="Failed to parse AI response")

    signals = [s for s in (normalize_signal(p, reference) for p in proposals) if s is not None]
    signals = expand_recurring(signals, reference)

    return ExtractionResult(
        signals=signals,
        has_temporal_content=any(s.target_day not in SAME_DAY_TOKENS for s in signals),
        reasoning=reasoning or "Signals extracted successfully",
    )
