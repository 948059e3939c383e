# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Tier 1: Exclusion registry tests — expiry, context matching, removal."""

from datetime import timedelta

from core.events import Events, bus
from signals.exclusions import (
    EXCLUSION_TTL_DAYS,
    add_exclusion,
    get_active_exclusions,
    is_active,
    is_pattern_excluded,
    remove_exclusion,
)

UID = "u1"


class TestAddExclusion:

    def test_temporary_exclusion_expires(self, store, now):
        exclusion = add_exclusion(UID, "mood_dip", now=now, store=store)
        assert exclusion.expires_at == now + timedelta(days=EXCLUSION_TTL_DAYS)
        assert exclusion.reason == "user_dismissed"
        assert is_active(exclusion, now + timedelta(days=29)) is True
        assert is_active(exclusion, now + timedelta(days=31)) is False

    def test_permanent_never_expires(self, store, now):
        exclusion = add_exclusion(UID, "mood_dip", permanent=True, now=now, store=store)
        assert exclusion.expires_at is None
        assert is_active(exclusion, now + timedelta(days=3650)) is True

    def test_emits_event(self, store, now):
        exclusion = add_exclusion(UID, "mood_dip", now=now, store=store)
        event = bus.history(Events.EXCLUSION_ADDED)[-1]
        assert event.data["exclusion_id"] == exclusion.id
        assert event.data["pattern_type"] == "mood_dip"


class TestMatching:

    def test_blanket_exclusion(self, store, now):
        add_exclusion(UID, "health", now=now, store=store)
        assert is_pattern_excluded(UID, "health", now=now, store=store) is True
        assert is_pattern_excluded(UID, "health", {"day": "monday"}, now=now, store=store) is True
        assert is_pattern_excluded(UID, "work", now=now, store=store) is False

    def test_context_must_match(self, store, now):
        add_exclusion(UID, "mood_dip", context={"day": "sunday"}, now=now, store=store)
        assert is_pattern_excluded(UID, "mood_dip", {"day": "sunday", "hour": 9}, now=now, store=store) is True
        assert is_pattern_excluded(UID, "mood_dip", {"day": "monday"}, now=now, store=store) is False
        assert is_pattern_excluded(UID, "mood_dip", now=now, store=store) is False

    def test_expired_exclusion_ignored(self, store, now):
        add_exclusion(UID, "health", now=now, store=store)
        later = now + timedelta(days=EXCLUSION_TTL_DAYS + 1)
        assert is_pattern_excluded(UID, "health", now=later, store=store) is False

    def test_active_exclusions(self, store, now):
        add_exclusion(UID, "a", now=now - timedelta(days=60), store=store)
        kept = add_exclusion(UID, "b", now=now, store=store)
        assert [e.id for e in get_active_exclusions(UID, now=now, store=store)] == [kept.id]


class TestRemove:

    def test_remove(self, store, now):
        exclusion = add_exclusion(UID, "health", now=now, store=store)
        assert remove_exclusion(UID, exclusion.id, store=store) is True
        assert is_pattern_excluded(UID, "health", now=now, store=store) is False

    def test_remove_missing(self, store):
        assert remove_exclusion(UID, "missing", store=store) is False
