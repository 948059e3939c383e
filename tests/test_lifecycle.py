# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Tier 2: Signal lifecycle tests — transition tables, history, side effects, races."""

import logging
import threading
from datetime import timedelta
from unittest.mock import patch

import pytest

from core.events import Events, bus
from core.schemas import (
    HearthValidationError,
    InvalidTransitionError,
    NotFoundError,
    StoreError,
)
from signals.exclusions import get_active_exclusions, is_pattern_excluded
from signals.lifecycle import (
    COLLECTION,
    INITIAL_STATES,
    MAX_STATE_HISTORY_LENGTH,
    TRANSITIONS,
    add_source_entry,
    cap_history,
    close_related_contradictions,
    create_signal_state,
    find_signal_by_topic,
    get_active_goals,
    get_all_signal_states,
    get_pending_insights,
    get_signal_state,
    get_unresolved_patterns,
    is_excluded_from,
    is_terminal_state,
    is_valid_transition,
    promote_signal,
    transition_signal_state,
    update_exclusion_flags,
)

UID = "u1"

LEGAL = [
    (signal_type, current, new)
    for signal_type, table in TRANSITIONS.items()
    for current, targets in table.items()
    for new in sorted(targets)
]

ILLEGAL = [
    (signal_type, current, new)
    for signal_type, table in TRANSITIONS.items()
    for current, targets in table.items()
    if targets
    for new in sorted(table)
    if new not in targets
]


class TestTransitionTable:

    def test_terminal_states(self):
        assert is_terminal_state("goal", "achieved")
        assert is_terminal_state("insight", "dismissed")
        assert is_terminal_state("contradiction", "resolved")
        assert not is_terminal_state("goal", "paused")

    def test_unknown_state_is_invalid(self, caplog):
        with caplog.at_level(logging.WARNING, logger="hearth.signals.lifecycle"):
            assert is_valid_transition("goal", "dreaming", "active") is False
        assert "dreaming" in caplog.text

    def test_unknown_type_is_invalid(self):
        assert is_valid_transition("mood", "proposed", "active") is False

    @pytest.mark.parametrize("signal_type,current,new", LEGAL)
    def test_legal_transition_applies(self, store, now, signal_type, current, new):
        signal = create_signal_state(UID, signal_type, "topic", initial_state=current, now=now, store=store)
        updated = transition_signal_state(UID, signal.id, new, now=now + timedelta(hours=1), store=store)

        assert updated.state == new
        assert updated.state_history[-1].from_state == current
        assert updated.state_history[-1].to == new
        assert get_signal_state(UID, signal.id, store=store).state == new

    @pytest.mark.parametrize("signal_type,current,new", ILLEGAL)
    def test_illegal_transition_rejected(self, store, now, signal_type, current, new):
        signal = create_signal_state(UID, signal_type, "topic", initial_state=current, now=now, store=store)
        before = store.get(UID, COLLECTION, signal.id)

        with pytest.raises(InvalidTransitionError) as exc:
            transition_signal_state(UID, signal.id, new, store=store)

        assert exc.value.current == current
        assert exc.value.requested == new
        assert store.get(UID, COLLECTION, signal.id) == before

    def test_terminal_state_has_no_exits(self, store, now):
        goal = create_signal_state(UID, "goal", "run", initial_state="active", now=now, store=store)
        transition_signal_state(UID, goal.id, "achieved", store=store)
        with pytest.raises(InvalidTransitionError):
            transition_signal_state(UID, goal.id, "active", store=store)

    def test_missing_signal(self, store):
        with pytest.raises(NotFoundError):
            transition_signal_state(UID, "nope", "active", store=store)


class TestCreate:

    def test_defaults_to_initial_state(self, store, now):
        for signal_type, initial in INITIAL_STATES.items():
            signal = create_signal_state(UID, signal_type, "t", now=now, store=store)
            assert signal.state == initial
            assert len(signal.state_history) == 1
            assert signal.state_history[0].from_state is None
            assert signal.state_history[0].to == initial

    def test_persists_wire_names(self, store, now):
        signal = create_signal_state(UID, "goal", "read more", source_entries=["e1", "e1"], now=now, store=store)
        doc = store.get(UID, COLLECTION, signal.id)
        assert doc["type"] == "goal"
        assert doc["state_history"][0]["from"] is None
        assert doc["source_entries"] == ["e1"]

    def test_unknown_type(self, store):
        with pytest.raises(HearthValidationError):
            create_signal_state(UID, "mood", "t", store=store)

    def test_unknown_state(self, store):
        with pytest.raises(HearthValidationError):
            create_signal_state(UID, "goal", "t", initial_state="pending", store=store)

    def test_terminal_initial_state(self, store):
        with pytest.raises(HearthValidationError):
            create_signal_state(UID, "goal", "t", initial_state="achieved", store=store)

    def test_emits_created_event(self, store, now):
        signal = create_signal_state(UID, "insight", "sleep", now=now, store=store)
        event = bus.history(Events.SIGNAL_STATE_CREATED)[-1]
        assert event.data["signal_id"] == signal.id
        assert event.data["state"] == "pending"


class TestHistory:

    def test_cap_history_keeps_creation_entry(self):
        history = list(range(30))
        capped = cap_history(history)
        assert len(capped) == MAX_STATE_HISTORY_LENGTH
        assert capped[0] == 0
        assert capped[1:] == list(range(11, 30))

    def test_short_history_untouched(self):
        assert cap_history([1, 2]) == [1, 2]

    def test_long_running_goal_history_capped(self, store, now):
        goal = create_signal_state(UID, "goal", "write", initial_state="active", now=now, store=store)
        state = "active"
        for i in range(25):
            state = "paused" if state == "active" else "active"
            goal = transition_signal_state(
                UID, goal.id, state, context={"step": i}, now=now + timedelta(minutes=i + 1), store=store,
            )

        assert len(goal.state_history) == MAX_STATE_HISTORY_LENGTH
        assert goal.state_history[0].from_state is None
        assert goal.state_history[0].to == "active"
        assert goal.state_history[-1].context == {"step": 24}


class TestFeedback:

    def test_dismiss_records_reason(self, store, now):
        insight = create_signal_state(UID, "insight", "sleep", now=now, store=store)
        insight = transition_signal_state(UID, insight.id, "dismissed", context={"reason": "not me"}, store=store)
        assert insight.user_feedback.dismissed is True
        assert insight.user_feedback.dismiss_reason == "not me"

    def test_verify_sets_flag(self, store, now):
        pattern = create_signal_state(UID, "pattern", "mondays", now=now, store=store)
        pattern = transition_signal_state(UID, pattern.id, "confirmed", store=store)
        assert pattern.user_feedback.verified is True

    def test_action_defaults_to_completed(self, store, now):
        insight = create_signal_state(UID, "insight", "sleep", now=now, store=store)
        insight = transition_signal_state(UID, insight.id, "actioned", store=store)
        assert insight.user_feedback.action_taken == "completed"


class TestContradictionCascade:

    def _contradiction(self, store, now, topic, state="detected"):
        signal = create_signal_state(UID, "contradiction", topic, now=now, store=store)
        if state != "detected":
            signal = transition_signal_state(UID, signal.id, state, now=now, store=store)
        return signal

    def test_goal_termination_resolves_open_contradictions(self, store, now):
        goal = create_signal_state(UID, "goal", "exercise", initial_state="active", now=now, store=store)
        detected = self._contradiction(store, now, "exercise")
        confirmed = self._contradiction(store, now, "exercise", "confirmed")
        rejected = self._contradiction(store, now, "exercise", "rejected")
        other = self._contradiction(store, now, "sleep")

        transition_signal_state(UID, goal.id, "achieved", store=store)

        for signal in (detected, confirmed):
            current = get_signal_state(UID, signal.id, store=store)
            assert current.state == "resolved"
            assert current.state_history[-1].context == {"resolved_by": "goal_termination"}
        assert get_signal_state(UID, rejected.id, store=store).state == "rejected"
        assert get_signal_state(UID, other.id, store=store).state == "detected"

        event = bus.history(Events.CONTRADICTIONS_RESOLVED)[-1]
        assert sorted(event.data["signal_ids"]) == sorted([detected.id, confirmed.id])

    def test_abandoned_goal_also_resolves(self, store, now):
        goal = create_signal_state(UID, "goal", "exercise", now=now, store=store)
        contradiction = self._contradiction(store, now, "exercise")
        transition_signal_state(UID, goal.id, "abandoned", store=store)
        assert get_signal_state(UID, contradiction.id, store=store).state == "resolved"

    def test_paused_goal_leaves_contradictions(self, store, now):
        goal = create_signal_state(UID, "goal", "exercise", initial_state="active", now=now, store=store)
        contradiction = self._contradiction(store, now, "exercise")
        transition_signal_state(UID, goal.id, "paused", store=store)
        assert get_signal_state(UID, contradiction.id, store=store).state == "detected"

    def test_cascade_failure_does_not_fail_transition(self, store, now, caplog):
        goal = create_signal_state(UID, "goal", "exercise", initial_state="active", now=now, store=store)
        with patch("signals.lifecycle.close_related_contradictions", side_effect=StoreError("disk full")):
            with caplog.at_level(logging.ERROR, logger="hearth.signals.lifecycle"):
                updated = transition_signal_state(UID, goal.id, "achieved", store=store)

        assert updated.state == "achieved"
        assert get_signal_state(UID, goal.id, store=store).state == "achieved"
        assert "disk full" in caplog.text

    def test_close_without_matches(self, store, now):
        assert close_related_contradictions(UID, "nothing", now=now, store=store) == 0
        assert bus.history(Events.CONTRADICTIONS_RESOLVED) == []


class TestExclusionOnDismiss:

    def test_dismiss_with_exclude_pattern(self, store, now):
        insight = create_signal_state(
            UID, "insight", "sunday blues",
            metadata={"pattern_type": "mood_dip", "pattern_context": {"day": "sunday"}},
            now=now, store=store,
        )
        transition_signal_state(
            UID, insight.id, "dismissed",
            context={"exclude_pattern": True, "permanent": True, "reason": "not relevant"},
            now=now, store=store,
        )

        exclusions = get_active_exclusions(UID, now=now, store=store)
        assert len(exclusions) == 1
        assert exclusions[0].pattern_type == "mood_dip"
        assert exclusions[0].context == {"day": "sunday"}
        assert exclusions[0].permanent is True
        assert exclusions[0].reason == "not relevant"

    def test_pattern_type_falls_back_to_topic(self, store, now):
        insight = create_signal_state(UID, "insight", "late nights", now=now, store=store)
        transition_signal_state(UID, insight.id, "dismissed", context={"exclude_pattern": True}, now=now, store=store)
        assert is_pattern_excluded(UID, "late nights", now=now, store=store) is True

    def test_plain_dismiss_adds_nothing(self, store, now):
        insight = create_signal_state(UID, "insight", "late nights", now=now, store=store)
        transition_signal_state(UID, insight.id, "dismissed", now=now, store=store)
        assert get_active_exclusions(UID, now=now, store=store) == []


class TestQueries:

    def test_all_states_newest_first(self, store, now):
        old = create_signal_state(UID, "goal", "a", now=now, store=store)
        new = create_signal_state(UID, "goal", "b", now=now + timedelta(days=1), store=store)
        create_signal_state(UID, "insight", "c", now=now + timedelta(days=2), store=store)

        assert [s.id for s in get_all_signal_states(UID, "goal", store=store)] == [new.id, old.id]
        assert len(get_all_signal_states(UID, store=store)) == 3

    def test_find_by_topic_returns_most_recent(self, store, now):
        create_signal_state(UID, "goal", "run", now=now, store=store)
        latest = create_signal_state(UID, "goal", "run", now=now + timedelta(hours=1), store=store)
        assert find_signal_by_topic(UID, "goal", "run", store=store).id == latest.id
        assert find_signal_by_topic(UID, "goal", "swim", store=store) is None

    def test_convenience_queries(self, store, now):
        create_signal_state(UID, "goal", "a", now=now, store=store)
        create_signal_state(UID, "goal", "b", initial_state="paused", now=now, store=store)
        create_signal_state(UID, "insight", "c", now=now, store=store)
        create_signal_state(UID, "insight", "d", initial_state="verified", now=now, store=store)
        create_signal_state(UID, "pattern", "e", initial_state="confirmed", now=now, store=store)

        assert {s.topic for s in get_active_goals(UID, store=store)} == {"a", "b"}
        assert [s.topic for s in get_pending_insights(UID, store=store)] == ["c"]
        assert [s.topic for s in get_unresolved_patterns(UID, store=store)] == ["e"]


class TestPromotion:

    def test_promote_creates_then_attaches(self, store, now):
        first, created = promote_signal(UID, "pattern", "late nights", "e1", now=now, store=store)
        again, created_again = promote_signal(UID, "pattern", "late nights", "e2", now=now, store=store)

        assert created is True
        assert created_again is False
        assert again.id == first.id
        assert again.source_entries == ["e1", "e2"]

    def test_same_entry_not_duplicated(self, store, now):
        promote_signal(UID, "pattern", "late nights", "e1", now=now, store=store)
        again, _ = promote_signal(UID, "pattern", "late nights", "e1", now=now, store=store)
        assert again.source_entries == ["e1"]

    def test_terminal_entity_not_reused(self, store, now):
        goal, _ = promote_signal(UID, "goal", "run", "e1", now=now, store=store)
        transition_signal_state(UID, goal.id, "abandoned", store=store)
        fresh, created = promote_signal(UID, "goal", "run", "e2", now=now, store=store)
        assert created is True
        assert fresh.id != goal.id


class TestFrozenEntities:

    def test_add_source_entry(self, store, now):
        goal = create_signal_state(UID, "goal", "run", source_entries=["e1"], now=now, store=store)
        goal = add_source_entry(UID, goal.id, "e2", store=store)
        assert goal.source_entries == ["e1", "e2"]

    def test_terminal_rejects_source_entry(self, store, now):
        insight = create_signal_state(UID, "insight", "x", now=now, store=store)
        transition_signal_state(UID, insight.id, "actioned", store=store)
        with pytest.raises(HearthValidationError):
            add_source_entry(UID, insight.id, "e2", store=store)

    def test_exclusion_flags(self, store, now):
        pattern = create_signal_state(UID, "pattern", "x", now=now, store=store)
        pattern = update_exclusion_flags(UID, pattern.id, store=store, exclude_from_insights=True)
        assert is_excluded_from(pattern, "insights") is True
        assert is_excluded_from(pattern, "patterns") is False

    def test_unknown_flag(self, store, now):
        pattern = create_signal_state(UID, "pattern", "x", now=now, store=store)
        with pytest.raises(HearthValidationError):
            update_exclusion_flags(UID, pattern.id, store=store, exclude_from_everything=True)

    def test_unknown_detector(self, store, now):
        pattern = create_signal_state(UID, "pattern", "x", now=now, store=store)
        with pytest.raises(HearthValidationError):
            is_excluded_from(pattern, "gaps")

    def test_terminal_rejects_flag_change(self, store, now):
        pattern = create_signal_state(UID, "pattern", "x", now=now, store=store)
        transition_signal_state(UID, pattern.id, "rejected", store=store)
        with pytest.raises(HearthValidationError):
            update_exclusion_flags(UID, pattern.id, store=store, exclude_from_patterns=True)


class TestConcurrency:

    def test_racing_transitions_one_wins(self, store, now):
        goal = create_signal_state(UID, "goal", "race", now=now, store=store)
        outcomes = []
        lock = threading.Lock()
        start = threading.Barrier(8)

        def worker():
            start.wait()
            try:
                transition_signal_state(UID, goal.id, "active", store=store)
                result = "ok"
            except InvalidTransitionError:
                result = "rejected"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("rejected") == 7
        final = get_signal_state(UID, goal.id, store=store)
        assert final.state == "active"
        assert len(final.state_history) == 2
