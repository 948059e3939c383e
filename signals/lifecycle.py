# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Signal lifecycle — goals, insights, patterns and contradictions as
state machines instead of stateless observations.

    Goal:          proposed -> active -> achieved | abandoned | paused
    Insight:       pending  -> verified -> actioned | dismissed
    Pattern:       detected -> confirmed -> resolved | rejected
    Contradiction: same table as Pattern

Every move goes through transition_signal_state(), which runs inside a
per-user store transaction: read, validate against the type's table,
append history, write. Nothing else can write the entity in between.

History keeps at most 20 entries. The creation entry always survives;
the newest 19 fill the rest.

Side effects run after the commit and never fail the transition:
- a goal reaching achieved/abandoned resolves open contradictions on
  the same topic, all in one batch
- an insight dismissed with context {"exclude_pattern": True} records
  an exclusion for its pattern

Terminal entities are frozen: no transitions, no new source entries,
no flag changes.
"""

import logging
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from core.events import Events, bus
from core.schemas import (
    ExclusionFlags,
    HearthValidationError,
    InvalidTransitionError,
    NotFoundError,
    SIGNAL_STATE_MODELS,
    SignalState,
    parse_signal_state,
)
from core.store import DocumentStore, get_store
from signals.exclusions import add_exclusion

logger = logging.getLogger("hearth.signals.lifecycle")

COLLECTION = "signal_states"
MAX_STATE_HISTORY_LENGTH = 20


class SignalStates:
    """All lifecycle state names. Use these constants, not raw strings."""

    # --- Goal ---
    GOAL_PROPOSED = "proposed"
    GOAL_ACTIVE = "active"
    GOAL_ACHIEVED = "achieved"
    GOAL_ABANDONED = "abandoned"
    GOAL_PAUSED = "paused"

    # --- Insight ---
    INSIGHT_PENDING = "pending"
    INSIGHT_VERIFIED = "verified"
    INSIGHT_DISMISSED = "dismissed"
    INSIGHT_ACTIONED = "actioned"

    # --- Pattern / contradiction ---
    PATTERN_DETECTED = "detected"
    PATTERN_CONFIRMED = "confirmed"
    PATTERN_REJECTED = "rejected"
    PATTERN_RESOLVED = "resolved"


S = SignalStates

GOAL_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.GOAL_PROPOSED: frozenset({S.GOAL_ACTIVE, S.GOAL_ABANDONED}),
    S.GOAL_ACTIVE: frozenset({S.GOAL_ACHIEVED, S.GOAL_ABANDONED, S.GOAL_PAUSED}),
    S.GOAL_PAUSED: frozenset({S.GOAL_ACTIVE, S.GOAL_ABANDONED}),
    S.GOAL_ACHIEVED: frozenset(),
    S.GOAL_ABANDONED: frozenset(),
}

INSIGHT_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.INSIGHT_PENDING: frozenset({S.INSIGHT_VERIFIED, S.INSIGHT_DISMISSED, S.INSIGHT_ACTIONED}),
    S.INSIGHT_VERIFIED: frozenset({S.INSIGHT_ACTIONED, S.INSIGHT_DISMISSED}),
    S.INSIGHT_ACTIONED: frozenset(),
    S.INSIGHT_DISMISSED: frozenset(),
}

PATTERN_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.PATTERN_DETECTED: frozenset({S.PATTERN_CONFIRMED, S.PATTERN_REJECTED}),
    S.PATTERN_CONFIRMED: frozenset({S.PATTERN_RESOLVED, S.PATTERN_REJECTED}),
    S.PATTERN_REJECTED: frozenset(),
    S.PATTERN_RESOLVED: frozenset(),
}

TRANSITIONS: Dict[str, Dict[str, FrozenSet[str]]] = {
    "goal": GOAL_TRANSITIONS,
    "insight": INSIGHT_TRANSITIONS,
    "pattern": PATTERN_TRANSITIONS,
    "contradiction": PATTERN_TRANSITIONS,
}

INITIAL_STATES = {
    "goal": S.GOAL_PROPOSED,
    "insight": S.INSIGHT_PENDING,
    "pattern": S.PATTERN_DETECTED,
    "contradiction": S.PATTERN_DETECTED,
}

GOAL_TERMINATIONS = frozenset({S.GOAL_ACHIEVED, S.GOAL_ABANDONED})
OPEN_CONTRADICTION_STATES = frozenset({S.PATTERN_DETECTED, S.PATTERN_CONFIRMED})
DETECTORS = ("contradictions", "insights", "patterns")


# ============================================================================
# Validation
# ============================================================================

def legal_next_states(signal_type: str, state: str) -> FrozenSet[str]:
    return TRANSITIONS.get(signal_type, {}).get(state, frozenset())


def is_valid_transition(signal_type: str, current: str, new: str) -> bool:
    table = TRANSITIONS.get(signal_type)
    if table is None or current not in table:
        logger.warning("Unknown %s state: %s", signal_type, current)
        return False
    return new in table[current]


def is_terminal_state(signal_type: str, state: str) -> bool:
    table = TRANSITIONS.get(signal_type, {})
    return state in table and not table[state]


def cap_history(history: List[Any]) -> List[Any]:
    """Keep the creation entry plus the newest entries, 20 at most."""
    if len(history) <= MAX_STATE_HISTORY_LENGTH:
        return history
    return [history[0]] + history[-(MAX_STATE_HISTORY_LENGTH - 1):]


def _apply_transition(
    signal: SignalState,
    new_state: str,
    context: Dict[str, Any],
    now: datetime,
) -> SignalState:
    """Return the transitioned copy of signal. Raises InvalidTransitionError."""
    if not is_valid_transition(signal.type, signal.state, new_state):
        raise InvalidTransitionError(signal.type, signal.state, new_state)

    doc = signal.to_doc()
    doc["state"] = new_state
    doc["last_updated"] = now.isoformat()
    doc["state_history"] = cap_history(doc["state_history"] + [{
        "from": signal.state,
        "to": new_state,
        "at": now.isoformat(),
        "context": context,
    }])

    feedback = doc["user_feedback"]
    if new_state in (S.INSIGHT_DISMISSED, S.PATTERN_REJECTED):
        feedback["dismissed"] = True
        feedback["dismiss_reason"] = context.get("reason")
    if new_state in (S.INSIGHT_VERIFIED, S.PATTERN_CONFIRMED):
        feedback["verified"] = True
    if new_state == S.INSIGHT_ACTIONED:
        feedback["action_taken"] = context.get("action") or "completed"

    return parse_signal_state(doc)


def _require_mutable(signal: SignalState) -> None:
    if is_terminal_state(signal.type, signal.state):
        raise HearthValidationError(
            f"Signal {signal.id} is in terminal state {signal.state}"
        )


# ============================================================================
# CRUD
# ============================================================================

def create_signal_state(
    user_id: str,
    signal_type: str,
    topic: str,
    initial_state: Optional[str] = None,
    source_entries: Iterable[str] = (),
    metadata: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> SignalState:
    """
    Create a lifecycle entity in its type's initial state (or initial_state).

    Raises:
        HearthValidationError: unknown type, unknown state, or a terminal
            initial state.
    """
    if signal_type not in TRANSITIONS:
        raise HearthValidationError(f"Unknown signal type: {signal_type!r}")
    initial_state = initial_state or INITIAL_STATES[signal_type]
    if initial_state not in TRANSITIONS[signal_type]:
        raise HearthValidationError(f"Unknown {signal_type} state: {initial_state!r}")
    if is_terminal_state(signal_type, initial_state):
        raise HearthValidationError(f"Cannot create {signal_type} in terminal state {initial_state!r}")

    store = store or get_store()
    now = now or datetime.now()

    signal = SIGNAL_STATE_MODELS[signal_type].model_validate({
        "id": store.new_id(),
        "topic": topic,
        "state": initial_state,
        "state_history": [{"from": None, "to": initial_state, "at": now, "context": context or {}}],
        "source_entries": list(dict.fromkeys(source_entries)),
        "metadata": metadata or {},
        "created_at": now,
        "last_updated": now,
    })
    store.set(user_id, COLLECTION, signal.id, signal.to_doc())

    logger.info("Created signal state %s (%s: %s) for user %s", signal.id, signal_type, topic, user_id)
    bus.emit(Events.SIGNAL_STATE_CREATED, {
        "user_id": user_id,
        "signal_id": signal.id,
        "type": signal_type,
        "topic": topic,
        "state": initial_state,
    }, source="signals.lifecycle")
    return signal


def get_signal_state(
    user_id: str,
    signal_id: str,
    store: Optional[DocumentStore] = None,
) -> Optional[SignalState]:
    doc = (store or get_store()).get(user_id, COLLECTION, signal_id)
    return parse_signal_state(doc) if doc else None


def _query(user_id: str, store: DocumentStore, **where) -> List[SignalState]:
    return [parse_signal_state(d) for d in store.list(user_id, COLLECTION, where=where or None)]


def get_signal_states_by_state(
    user_id: str,
    signal_type: str,
    states: Iterable[str],
    store: Optional[DocumentStore] = None,
) -> List[SignalState]:
    wanted = set(states)
    return [s for s in _query(user_id, store or get_store(), type=signal_type) if s.state in wanted]


def get_all_signal_states(
    user_id: str,
    signal_type: Optional[str] = None,
    store: Optional[DocumentStore] = None,
) -> List[SignalState]:
    """Every entity (optionally of one type), most recently updated first."""
    where = {"type": signal_type} if signal_type else {}
    states = _query(user_id, store or get_store(), **where)
    return sorted(states, key=lambda s: s.last_updated, reverse=True)


def find_signal_by_topic(
    user_id: str,
    signal_type: str,
    topic: str,
    store: Optional[DocumentStore] = None,
) -> Optional[SignalState]:
    """Most recently updated entity of this type and topic."""
    matches = _query(user_id, store or get_store(), type=signal_type, topic=topic)
    if not matches:
        return None
    return max(matches, key=lambda s: s.last_updated)


def get_active_goals(user_id: str, store: Optional[DocumentStore] = None) -> List[SignalState]:
    return get_signal_states_by_state(
        user_id, "goal", (S.GOAL_PROPOSED, S.GOAL_ACTIVE, S.GOAL_PAUSED), store=store,
    )


def get_pending_insights(user_id: str, store: Optional[DocumentStore] = None) -> List[SignalState]:
    return get_signal_states_by_state(user_id, "insight", (S.INSIGHT_PENDING,), store=store)


def get_unresolved_patterns(user_id: str, store: Optional[DocumentStore] = None) -> List[SignalState]:
    return get_signal_states_by_state(
        user_id, "pattern", (S.PATTERN_DETECTED, S.PATTERN_CONFIRMED), store=store,
    )


# ============================================================================
# Transitions
# ============================================================================

def transition_signal_state(
    user_id: str,
    signal_id: str,
    new_state: str,
    context: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> SignalState:
    """
    Move a signal to new_state atomically and return the updated entity.

    Raises:
        NotFoundError: no such signal.
        InvalidTransitionError: new_state isn't legal from the current state.
            The stored entity is left untouched.
    """
    store = store or get_store()
    context = dict(context or {})
    now = now or datetime.now()

    with store.transaction(user_id) as txn:
        doc = txn.get(COLLECTION, signal_id)
        if doc is None:
            raise NotFoundError(f"Signal not found: {signal_id}")
        current = parse_signal_state(doc)
        try:
            updated = _apply_transition(current, new_state, context, now)
        except InvalidTransitionError:
            logger.warning(
                "Rejected transition for signal %s (user %s): %s -> %s",
                signal_id, user_id, current.state, new_state,
            )
            raise
        txn.set(COLLECTION, signal_id, updated.to_doc())

    logger.info("Transitioned signal %s: %s -> %s", signal_id, current.state, new_state)
    bus.emit(Events.SIGNAL_STATE_TRANSITIONED, {
        "user_id": user_id,
        "signal_id": signal_id,
        "type": updated.type,
        "topic": updated.topic,
        "from": current.state,
        "to": new_state,
    }, source="signals.lifecycle")

    _run_side_effects(user_id, updated, context, now, store)
    return updated


def _run_side_effects(
    user_id: str,
    signal: SignalState,
    context: Dict[str, Any],
    now: datetime,
    store: DocumentStore,
) -> None:
    if signal.type == "goal" and signal.state in GOAL_TERMINATIONS:
        try:
            close_related_contradictions(user_id, signal.topic, now=now, store=store)
        except Exception as e:
            logger.error(
                "Failed to resolve contradictions after goal %s -> %s (user %s, topic %r): %s",
                signal.id, signal.state, user_id, signal.topic, e,
            )

    if signal.type == "insight" and signal.state == S.INSIGHT_DISMISSED and context.get("exclude_pattern"):
        pattern_type = signal.metadata.get("pattern_type") or signal.topic
        try:
            add_exclusion(
                user_id,
                pattern_type,
                context=signal.metadata.get("pattern_context") or {},
                reason=context.get("reason"),
                permanent=bool(context.get("permanent")),
                now=now,
                store=store,
            )
        except Exception as e:
            logger.error(
                "Failed to record exclusion for dismissed insight %s (user %s, pattern %s): %s",
                signal.id, user_id, pattern_type, e,
            )


def close_related_contradictions(
    user_id: str,
    topic: str,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> int:
    """Resolve every open contradiction on topic in one commit. Returns the count."""
    store = store or get_store()
    now = now or datetime.now()
    context = {"resolved_by": "goal_termination"}

    closed = []
    with store.transaction(user_id) as txn:
        for contradiction in _query(user_id, store, type="contradiction", topic=topic):
            if contradiction.state not in OPEN_CONTRADICTION_STATES:
                continue
            resolved = _apply_transition(contradiction, S.PATTERN_RESOLVED, context, now)
            txn.set(COLLECTION, resolved.id, resolved.to_doc())
            closed.append(resolved.id)

    if closed:
        logger.info("Closed %d contradiction(s) related to goal topic %r", len(closed), topic)
        bus.emit(Events.CONTRADICTIONS_RESOLVED, {
            "user_id": user_id,
            "topic": topic,
            "signal_ids": closed,
        }, source="signals.lifecycle")
    return len(closed)


# ============================================================================
# Promotion & mutable fields
# ============================================================================

def promote_signal(
    user_id: str,
    signal_type: str,
    topic: str,
    entry_id: str,
    metadata: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> Tuple[SignalState, bool]:
    """
    Attach entry_id to the open entity for (type, topic), creating one if none.

    Returns (signal, created).
    """
    store = store or get_store()
    now = now or datetime.now()

    with store.transaction(user_id) as txn:
        open_states = [
            s for s in _query(user_id, store, type=signal_type, topic=topic)
            if not is_terminal_state(signal_type, s.state)
        ]
        if not open_states:
            signal = create_signal_state(
                user_id, signal_type, topic,
                source_entries=[entry_id], metadata=metadata, context=context,
                now=now, store=store,
            )
            return signal, True

        existing = max(open_states, key=lambda s: s.last_updated)
        if entry_id in existing.source_entries:
            return existing, False
        updated = existing.model_copy(update={
            "source_entries": existing.source_entries + [entry_id],
            "last_updated": now,
        })
        txn.set(COLLECTION, updated.id, updated.to_doc())
        return updated, False


def add_source_entry(
    user_id: str,
    signal_id: str,
    entry_id: str,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> SignalState:
    store = store or get_store()
    with store.transaction(user_id) as txn:
        doc = txn.get(COLLECTION, signal_id)
        if doc is None:
            raise NotFoundError(f"Signal not found: {signal_id}")
        signal = parse_signal_state(doc)
        _require_mutable(signal)
        if entry_id in signal.source_entries:
            return signal
        signal = signal.model_copy(update={
            "source_entries": signal.source_entries + [entry_id],
            "last_updated": now or datetime.now(),
        })
        txn.set(COLLECTION, signal_id, signal.to_doc())
        return signal


def update_exclusion_flags(
    user_id: str,
    signal_id: str,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
    **flags: bool,
) -> SignalState:
    """Set any of exclude_from_contradictions / _insights / _patterns."""
    unknown = set(flags) - set(ExclusionFlags.model_fields)
    if unknown:
        raise HearthValidationError(f"Unknown exclusion flag(s): {sorted(unknown)}")

    store = store or get_store()
    with store.transaction(user_id) as txn:
        doc = txn.get(COLLECTION, signal_id)
        if doc is None:
            raise NotFoundError(f"Signal not found: {signal_id}")
        signal = parse_signal_state(doc)
        _require_mutable(signal)
        signal = signal.model_copy(update={
            "exclusions": signal.exclusions.model_copy(update={k: bool(v) for k, v in flags.items()}),
            "last_updated": now or datetime.now(),
        })
        txn.set(COLLECTION, signal_id, signal.to_doc())
        return signal


def is_excluded_from(signal: SignalState, detector: str) -> bool:
    """Whether signal must be kept out of a detector ("contradictions", "insights", "patterns")."""
    if detector not in DETECTORS:
        raise HearthValidationError(f"Unknown detector: {detector!r}")
    return getattr(signal.exclusions, f"exclude_from_{detector}")
