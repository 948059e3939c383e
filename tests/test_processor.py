# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Tier 2: Entry processing tests — version-checked persistence, stale discard."""

import json
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from core.events import Events, bus
from core.schemas import HearthValidationError, JournalEntry, NotFoundError, Signal, StoreError
from signals.processor import process_entry_signals, reprocess_signals_on_edit
from signals.repository import (
    batch_update_signal_status,
    bump_extraction_version,
    delete_signals_for_entry,
    format_date_key,
    get_extraction_version,
    get_future_signals,
    get_signals_for_date,
    get_signals_for_entry,
    save_entry,
    save_signals_with_version_check,
    update_signal_status,
)

UID = "u1"
TEXT = "Dentist appointment tomorrow, feeling nervous"

REPLY = json.dumps({
    "signals": [
        {"type": "feeling", "content": "nervous", "target_day": "today", "confidence": 0.9},
        {"type": "plan", "content": "dentist", "target_day": "tomorrow", "confidence": 0.85},
    ],
    "reasoning": "Dentist tomorrow",
})


def _comprehend(text, reference):
    return REPLY


def _signal(kind="plan", target=datetime(2026, 3, 11, 12)):
    return Signal(type=kind, content="x", target_day="tomorrow", target_date=target, confidence=0.8)


@pytest.fixture
def entry(store):
    return save_entry(UID, JournalEntry(id="e1", text=TEXT, signal_extraction_version=1), store=store)


class TestProcessEntry:

    def test_writes_signals_for_current_version(self, store, now, entry):
        result = process_entry_signals(entry, TEXT, 1, user_id=UID, reference=now, comprehend=_comprehend, store=store)

        assert result.stale is False
        assert result.error is None
        assert len(result.signals) == 2
        assert result.has_temporal_content is True

        stored = get_signals_for_entry("e1", UID, store=store)
        assert len(stored) == 2
        assert {s.extraction_version for s in stored} == {1}
        assert bus.history(Events.SIGNALS_EXTRACTED)[-1].data["entry_id"] == "e1"

    def test_edit_during_extraction_discards_results(self, store, now, entry):
        def slow_comprehend(text, reference):
            bump_extraction_version(UID, "e1", store=store)
            return REPLY

        result = process_entry_signals(
            entry, TEXT, 1, user_id=UID, reference=now, comprehend=slow_comprehend, store=store,
        )

        assert result.stale is True
        assert result.signals == []
        assert get_signals_for_entry("e1", UID, store=store) == []
        event = bus.history(Events.SIGNALS_DISCARDED_STALE)[-1]
        assert event.data["expected_version"] == 1
        assert event.data["current_version"] == 2

    def test_newer_version_replaces_older_signals(self, store, now, entry):
        process_entry_signals(entry, TEXT, 1, user_id=UID, reference=now, comprehend=_comprehend, store=store)
        bump_extraction_version(UID, "e1", store=store)

        reply = json.dumps({"signals": [
            {"type": "plan", "content": "dentist", "target_day": "tomorrow", "confidence": 0.9},
        ]})
        result = process_entry_signals(
            entry, TEXT, 2, user_id=UID, reference=now, comprehend=lambda t, r: reply, store=store,
        )

        assert len(result.signals) == 1
        stored = get_signals_for_entry("e1", UID, store=store)
        assert [s.extraction_version for s in stored] == [2]

    def test_dict_entry_carries_user(self, store, now, entry):
        result = process_entry_signals(
            {"id": "e1", "user_id": UID}, TEXT, 1, reference=now, comprehend=_comprehend, store=store,
        )
        assert len(result.signals) == 2

    def test_missing_ids_rejected(self, store):
        with pytest.raises(HearthValidationError):
            process_entry_signals({"id": "e1"}, TEXT, 1, store=store)

    def test_store_failure_reported_not_raised(self, now):
        broken = MagicMock()
        broken.transaction.side_effect = StoreError("disk full")

        result = process_entry_signals(
            {"id": "e1"}, TEXT, 1, user_id=UID, reference=now, comprehend=_comprehend, store=broken,
        )

        assert result.error == "disk full"
        assert result.signals == []
        assert result.stale is False

    def test_reprocess_on_edit(self, store, now, entry):
        process_entry_signals(entry, TEXT, 1, user_id=UID, reference=now, comprehend=_comprehend, store=store)

        reply = json.dumps({"signals": [
            {"type": "plan", "content": "dentist", "target_day": "next_monday", "confidence": 0.9},
        ]})
        result = reprocess_signals_on_edit(
            "e1", "Dentist moved to next Monday", UID, reference=now, comprehend=lambda t, r: reply, store=store,
        )

        assert get_extraction_version(UID, "e1", store=store) == 2
        stored = get_signals_for_entry("e1", UID, store=store)
        assert len(stored) == 1
        assert stored[0].extraction_version == 2
        assert stored[0].target_date == datetime(2026, 3, 23, 12)
        assert result.stale is False


class TestRepository:

    def test_extraction_version(self, store, entry):
        assert get_extraction_version(UID, "e1", store=store) == 1
        assert bump_extraction_version(UID, "e1", store=store) == 2
        assert get_extraction_version(UID, "missing", store=store) is None

    def test_bump_missing_entry(self, store):
        with pytest.raises(NotFoundError):
            bump_extraction_version(UID, "missing", store=store)

    def test_format_date_key(self):
        assert format_date_key(datetime(2026, 3, 5, 23)) == "2026-03-05"
        assert format_date_key("2026-03-05T12:00:00") == "2026-03-05"

    def test_signals_for_date_skip_dismissed(self, store, now):
        stored = save_signals_with_version_check([_signal(), _signal()], "e1", UID, 1, now=now, store=store)
        update_signal_status(stored[0].id, UID, "dismissed", store=store)

        found = get_signals_for_date(UID, datetime(2026, 3, 11), store=store)
        assert [s.id for s in found] == [stored[1].id]

    def test_future_signals_are_upcoming_plans(self, store, now):
        save_signals_with_version_check([
            _signal("plan", datetime(2026, 3, 20, 12)),
            _signal("plan", datetime(2026, 3, 12, 12)),
            _signal("plan", datetime(2026, 3, 1, 12)),
            _signal("feeling", datetime(2026, 3, 15, 12)),
        ], "e1", UID, 1, now=now, store=store)

        future = get_future_signals(UID, from_date=now, store=store)
        assert [s.target_date.day for s in future] == [12, 20]

    def test_delete_signals_for_entry(self, store, now):
        save_signals_with_version_check([_signal(), _signal()], "e1", UID, 1, now=now, store=store)
        save_signals_with_version_check([_signal()], "e2", UID, 1, now=now, store=store)

        assert delete_signals_for_entry("e1", UID, store=store) == 2
        assert get_signals_for_entry("e1", UID, store=store) == []
        assert len(get_signals_for_entry("e2", UID, store=store)) == 1

    def test_invalid_status(self, store, now):
        stored = save_signals_with_version_check([_signal()], "e1", UID, 1, now=now, store=store)
        with pytest.raises(HearthValidationError):
            update_signal_status(stored[0].id, UID, "archived", store=store)

    def test_batch_status_is_all_or_nothing(self, store, now):
        stored = save_signals_with_version_check([_signal(), _signal()], "e1", UID, 1, now=now, store=store)
        with pytest.raises(NotFoundError):
            batch_update_signal_status([stored[0].id, "missing"], UID, "verified", store=store)
        assert {s.status for s in get_signals_for_entry("e1", UID, store=store)} == {"active"}

        assert batch_update_signal_status([s.id for s in stored], UID, "verified", store=store) == 2
        assert {s.status for s in get_signals_for_entry("e1", UID, store=store)} == {"verified"}
