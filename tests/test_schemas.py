# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Tier 1: Schema tests — wire names, validators, per-type lifecycle models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from core.schemas import (
    ContradictionState,
    GoalState,
    InvalidTransitionError,
    Signal,
    StoredSignal,
    UnresolvableDateError,
    parse_signal_state,
)

NOW = "2026-03-10T12:00:00"


def _state(**overrides):
    data = {
        "id": "s1",
        "type": "goal",
        "topic": "run",
        "state": "proposed",
        "created_at": NOW,
        "last_updated": NOW,
    }
    data.update(overrides)
    return data


class TestSignal:

    def test_wire_name_for_kind(self):
        signal = Signal(type="plan", content="gym", target_day="tomorrow", target_date=NOW, confidence=0.8)
        assert signal.kind == "plan"
        doc = signal.to_doc()
        assert doc["type"] == "plan"
        assert "kind" not in doc
        assert doc["target_date"] == NOW

    def test_populate_by_field_name(self):
        signal = Signal(kind="event", content="x", target_day="today", target_date=NOW, confidence=0.5)
        assert signal.kind == "event"

    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            Signal(type="plan", content="x", target_day="today", target_date=NOW, confidence=1.5)

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            Signal(type="thought", content="x", target_day="today", target_date=NOW, confidence=0.5)

    def test_sentiment_normalized(self):
        signal = Signal(type="feeling", content="x", target_day="today", target_date=NOW,
                        confidence=0.5, sentiment="ANXIOUS")
        assert signal.sentiment == "anxious"

    def test_stored_signal_keeps_extra_fields(self):
        stored = StoredSignal.model_validate({
            "type": "plan", "content": "x", "target_day": "today", "target_date": NOW,
            "confidence": 0.5, "id": "s1", "entry_id": "e1", "user_id": "u1",
            "extraction_version": 3, "legacy_field": "kept",
        })
        assert stored.status == "active"
        assert stored.to_doc()["legacy_field"] == "kept"


class TestSignalState:

    def test_dispatches_on_type(self):
        assert isinstance(parse_signal_state(_state()), GoalState)
        parsed = parse_signal_state(_state(type="contradiction", state="detected"))
        assert isinstance(parsed, ContradictionState)

    def test_state_must_belong_to_type(self):
        with pytest.raises(ValidationError):
            parse_signal_state(_state(state="pending"))

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            parse_signal_state(_state(type="mood"))

    def test_history_from_alias(self):
        parsed = parse_signal_state(_state(state_history=[{"from": None, "to": "proposed", "at": NOW}]))
        entry = parsed.state_history[0]
        assert entry.from_state is None
        assert parsed.to_doc()["state_history"][0]["from"] is None
        assert entry.at == datetime(2026, 3, 10, 12)


class TestErrors:

    def test_invalid_transition_message(self):
        error = InvalidTransitionError("goal", "achieved", "active")
        assert str(error) == "Invalid goal transition: achieved -> active"
        assert error.signal_type == "goal"

    def test_unresolvable_date_keeps_token(self):
        assert UnresolvableDateError("someday").token == "someday"
