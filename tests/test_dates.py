# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Tier 1: Target-date resolver tests — every token lands at noon."""

from datetime import datetime

import pytest

from core.schemas import UnresolvableDateError
from signals.dates import normalize_token, resolve_or_raise, resolve_target_date


def _day(month, day, year=2026):
    return datetime(year, month, day, 12, 0)


class TestFixedTokens:

    @pytest.mark.parametrize("token,expected", [
        ("today", _day(3, 10)),
        ("tonight", _day(3, 10)),
        ("yesterday", _day(3, 9)),
        ("last_night", _day(3, 9)),
        ("tomorrow", _day(3, 11)),
        ("day_after_tomorrow", _day(3, 12)),
        ("last_week", _day(3, 3)),
        ("next_week", _day(3, 17)),
        ("in_a_few_days", _day(3, 13)),
    ])
    def test_resolves(self, now, token, expected):
        assert resolve_target_date(token, now) == expected

    def test_always_noon(self):
        late = datetime(2026, 3, 10, 23, 45)
        assert resolve_target_date("today", late) == _day(3, 10)


class TestDaysAgo:

    @pytest.mark.parametrize("token,expected", [
        ("two_days_ago", _day(3, 8)),
        ("3_days_ago", _day(3, 7)),
        ("a_couple_days_ago", _day(3, 8)),
        ("a_few_days_ago", _day(3, 7)),
    ])
    def test_resolves(self, now, token, expected):
        assert resolve_target_date(token, now) == expected


class TestWeekdays:

    def test_bare_weekday_is_most_recent_past(self, now):
        assert resolve_target_date("monday", now) == _day(3, 9)

    def test_bare_same_weekday_is_a_week_ago(self, now):
        assert resolve_target_date("tuesday", now) == _day(3, 3)

    def test_this_weekday(self, now):
        assert resolve_target_date("this_friday", now) == _day(3, 13)

    def test_next_weekday_skips_a_week(self, now):
        assert resolve_target_date("next_monday", now) == _day(3, 23)

    def test_this_weekend_is_saturday(self, now):
        assert resolve_target_date("this_weekend", now) == _day(3, 14)

    def test_later_this_week(self, now):
        assert resolve_target_date("later_this_week", now) == _day(3, 13)

    def test_suffix_not_accepted(self, now):
        assert resolve_target_date("next_mondayish", now) is None


class TestMonthDay:

    def test_upcoming(self, now):
        assert resolve_target_date("march_15", now) == _day(3, 15)

    def test_spaces_normalized(self, now):
        assert resolve_target_date("March 15", now) == _day(3, 15)

    def test_passed_rolls_to_next_year(self, now):
        assert resolve_target_date("jan_5", now) == _day(1, 5, 2027)

    def test_impossible_date(self, now):
        assert resolve_target_date("feb_30", now) is None


class TestUnknown:

    @pytest.mark.parametrize("token", ["", "someday", "whenever", None])
    def test_none(self, now, token):
        assert resolve_target_date(token, now) is None

    def test_resolve_or_raise(self, now):
        with pytest.raises(UnresolvableDateError) as exc:
            resolve_or_raise("someday", now)
        assert exc.value.token == "someday"

    def test_normalize_token(self):
        assert normalize_token("  Next  Monday ") == "next_monday"
