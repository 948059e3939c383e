# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Hearth Schema Registry — Pydantic models for every document Hearth stores.

Single source of truth for signals, lifecycle states, exclusions, coverage
snapshots, engagement preferences and scheduled insights. Catches field
drift and type mismatches at load time.

Usage:
    from core.schemas import Signal, parse_signal_state

    state = parse_signal_state(store.get(user_id, "signal_states", sid))
    store.set(user_id, "signal_states", sid, state.to_doc())

All models use extra="allow" so existing documents with unknown fields
won't break — we just won't validate those extra fields.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, Field, TypeAdapter, field_validator


# ============================================================================
# Base config: all models inherit this
# ============================================================================

class HearthModel(BaseModel):
    """Base for all Hearth schemas. Allows extra fields for forward compat."""
    model_config = {"extra": "allow", "populate_by_name": True}

    def to_doc(self) -> Dict[str, Any]:
        """JSON-safe dict using wire names (e.g. "type", "from")."""
        return self.model_dump(mode="json", by_alias=True)


def to_local_naive(value: datetime) -> datetime:
    """Aware datetimes become naive local time. Naive ones pass through."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


# Collaborators write ISO strings ending in "Z"; everything here compares
# against naive local now.
LocalDatetime = Annotated[datetime, AfterValidator(to_local_naive)]


# ============================================================================
# Exceptions
# ============================================================================

class HearthError(Exception):
    """Base class for every error Hearth raises on purpose."""


class NotFoundError(HearthError):
    """Raised when a requested document (entry, signal state, ...) doesn't exist."""


class HearthValidationError(HearthError):
    """Raised when input fails validation (unknown type, bad flag, frozen entity)."""


class InvalidTransitionError(HearthError):
    """Raised when a lifecycle move is not in the type's transition table."""

    def __init__(self, signal_type: str, current: str, requested: str):
        self.signal_type = signal_type
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid {signal_type} transition: {current} -> {requested}"
        )


class UnresolvableDateError(HearthError):
    """Raised when a relative-day token can't be turned into a date."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Cannot resolve target day: {token!r}")


class DependencyUnavailableError(HearthError):
    """Raised when a collaborator (LLM, store, oracle) can't answer."""


class StoreError(HearthError):
    """Raised when the document store can't read or commit."""


# ============================================================================
# SIGNALS
# ============================================================================

SignalKind = Literal["feeling", "event", "plan"]
SignalStatus = Literal["active", "verified", "dismissed"]

SENTIMENTS = (
    "positive", "negative", "neutral", "anxious",
    "excited", "hopeful", "dreading",
)

MAX_PHRASE_LENGTH = 200


class Signal(HearthModel):
    """A dated observation pulled from one journal entry."""
    kind: SignalKind = Field(alias="type")
    content: str
    target_day: str
    target_date: LocalDatetime
    sentiment: str = "neutral"
    original_phrase: str = ""
    confidence: float = Field(ge=0.0, le=1.0)
    is_recurring_instance: bool = False
    recurring_pattern: Optional[str] = None
    occurrence_index: Optional[int] = None

    @field_validator("sentiment", mode="before")
    @classmethod
    def _known_sentiment(cls, v):
        if isinstance(v, str) and v.lower() in SENTIMENTS:
            return v.lower()
        return "neutral"

    @field_validator("original_phrase", mode="before")
    @classmethod
    def _truncate_phrase(cls, v):
        if v is None:
            return ""
        return str(v)[:MAX_PHRASE_LENGTH]


class StoredSignal(Signal):
    """A signal as persisted under users/{uid}/signals/."""
    id: str
    entry_id: str
    user_id: str
    extraction_version: int
    status: SignalStatus = "active"
    recorded_at: Optional[LocalDatetime] = None
    created_at: Optional[LocalDatetime] = None
    updated_at: Optional[LocalDatetime] = None


class JournalEntry(HearthModel):
    """The slice of a journal entry this package reads or writes."""
    id: str
    text: str = ""
    created_at: Optional[LocalDatetime] = None
    signal_extraction_version: int = 0
    mood_score: Optional[float] = None
    safety_flagged: bool = False
    has_warning_indicators: bool = False


class ExtractionResult(HearthModel):
    signals: List[Signal] = Field(default_factory=list)
    has_temporal_content: bool = False
    reasoning: Optional[str] = None


class ProcessResult(HearthModel):
    """Outcome of one entry-processing call. stale=True means nothing was written."""
    signals: List[Signal] = Field(default_factory=list)
    has_temporal_content: bool = False
    stale: bool = False
    reasoning: Optional[str] = None
    error: Optional[str] = None


# ============================================================================
# SIGNAL LIFECYCLE
# ============================================================================

class HistoryEntry(HearthModel):
    """One recorded state change. from_state is None for the creation entry."""
    from_state: Optional[str] = Field(None, alias="from")
    to: str
    at: LocalDatetime
    context: Dict[str, Any] = Field(default_factory=dict)


class ExclusionFlags(HearthModel):
    exclude_from_contradictions: bool = False
    exclude_from_insights: bool = False
    exclude_from_patterns: bool = False


class UserFeedback(HearthModel):
    verified: bool = False
    dismissed: bool = False
    dismiss_reason: Optional[str] = None
    action_taken: Optional[str] = None


class _SignalStateBase(HearthModel):
    id: str
    topic: str
    state_history: List[HistoryEntry] = Field(default_factory=list)
    source_entries: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    exclusions: ExclusionFlags = Field(default_factory=ExclusionFlags)
    user_feedback: UserFeedback = Field(default_factory=UserFeedback)
    created_at: LocalDatetime
    last_updated: LocalDatetime


class GoalState(_SignalStateBase):
    type: Literal["goal"] = "goal"
    state: Literal["proposed", "active", "achieved", "abandoned", "paused"]


class InsightState(_SignalStateBase):
    type: Literal["insight"] = "insight"
    state: Literal["pending", "verified", "dismissed", "actioned"]


class PatternState(_SignalStateBase):
    type: Literal["pattern"] = "pattern"
    state: Literal["detected", "confirmed", "rejected", "resolved"]


class ContradictionState(_SignalStateBase):
    type: Literal["contradiction"] = "contradiction"
    state: Literal["detected", "confirmed", "rejected", "resolved"]


SignalState = Annotated[
    Union[GoalState, InsightState, PatternState, ContradictionState],
    Field(discriminator="type"),
]

SIGNAL_STATE_MODELS = {
    "goal": GoalState,
    "insight": InsightState,
    "pattern": PatternState,
    "contradiction": ContradictionState,
}

_signal_state_adapter = TypeAdapter(SignalState)


def parse_signal_state(data: Dict[str, Any]) -> SignalState:
    """Validate a stored document into the right per-type model."""
    return _signal_state_adapter.validate_python(data)


class Exclusion(HearthModel):
    """User request to stop surfacing a pattern (optionally in a context)."""
    id: str
    pattern_type: str
    context: Dict[str, Any] = Field(default_factory=dict)
    reason: Optional[str] = None
    permanent: bool = False
    excluded_at: LocalDatetime
    expires_at: Optional[LocalDatetime] = None


# ============================================================================
# GAPS & PROMPTS
# ============================================================================

class DomainCoverage(HearthModel):
    normalized_coverage: float = 0.0
    last_mention_date: Optional[LocalDatetime] = None
    entry_count: int = 0


class CoverageSnapshot(HearthModel):
    """Per-user topic coverage produced by the analytics job."""
    domains: Dict[str, DomainCoverage] = Field(default_factory=dict)
    first_entry_date: Optional[LocalDatetime] = None
    last_updated: Optional[LocalDatetime] = None


class GapRecord(HearthModel):
    domain: str
    gap_score: float
    last_mention_date: Optional[LocalDatetime] = None
    normalized_coverage: float = 0.0


class EngagementPreferences(HearthModel):
    style_acceptance_rates: Dict[str, int] = Field(default_factory=dict)
    snooze_until: Dict[str, LocalDatetime] = Field(default_factory=dict)
    preferred_style: Optional[str] = None
    last_updated: Optional[LocalDatetime] = None


class EngagementRecord(HearthModel):
    domain: str
    prompt_style: str
    response: Literal["accepted", "dismissed", "snoozed"]
    resulted_in_entry: bool = False
    timestamp: LocalDatetime


class GapPrompt(HearthModel):
    domain: str
    prompt_text: str
    prompt_style: str
    gap_score: float
    last_mention_date: Optional[LocalDatetime] = None
    seasonal: Optional[str] = None
    personalized: bool = False
    safety_adjusted: bool = False


class RiskAssessment(HearthModel):
    """Longitudinal mood check. reason is None when data suffices and nothing is wrong."""
    is_at_risk: bool = False
    reason: Optional[str] = "insufficient_data"
    entries_analyzed: int = 0
    window_days: int = 14
    metrics: Dict[str, Any] = Field(default_factory=dict)
    thresholds: Dict[str, float] = Field(default_factory=dict)
    flags: Dict[str, bool] = Field(default_factory=dict)


class Entitlement(HearthModel):
    entitled: bool
    reason: str


# ============================================================================
# INSIGHTS
# ============================================================================

class ScheduledInsight(HearthModel):
    """An externally generated insight plus its reveal bookkeeping."""
    id: str
    confidence: Optional[float] = None
    confidence_score: Optional[float] = None
    is_backfilled: bool = False
    backfilled_at: Optional[LocalDatetime] = None
    scheduled_reveal_date: Optional[LocalDatetime] = None
    revealed: bool = False
    revealed_at: Optional[LocalDatetime] = None
