# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Tier 1: Event bus tests — dispatch order, once, mute, history, recursion, threading."""

import threading

import pytest

from core.events import Event, EventBus, Events


@pytest.fixture
def bus():
    return EventBus(history_size=50)


class TestDispatch:

    def test_subscriber_receives_payload(self, bus):
        received = []
        bus.on(Events.SIGNALS_EXTRACTED, lambda e: received.append(e.data))
        bus.emit(Events.SIGNALS_EXTRACTED, {"entry_id": "e1"})
        assert received == [{"entry_id": "e1"}]

    def test_emit_returns_event(self, bus):
        event = bus.emit(Events.INSIGHTS_REVEALED, {"insight_ids": ["i1"]}, source="nexus.rotation")
        assert isinstance(event, Event)
        assert event.type == Events.INSIGHTS_REVEALED
        assert event.source == "nexus.rotation"

    def test_no_subscribers(self, bus):
        assert bus.emit("nobody_listening").data == {}

    def test_higher_priority_first(self, bus):
        order = []
        bus.on("t", lambda e: order.append("low"), priority=0)
        bus.on("t", lambda e: order.append("high"), priority=10)
        bus.on("t", lambda e: order.append("low-2"), priority=0)
        bus.emit("t")
        assert order == ["high", "low", "low-2"]

    def test_failing_handler_isolated(self, bus):
        results = []

        def bad(e):
            raise RuntimeError("boom")

        bus.on("t", bad, priority=10)
        bus.on("t", lambda e: results.append("ok"))
        bus.emit("t")
        assert results == ["ok"]


class TestSubscriptions:

    def test_once_fires_once(self, bus):
        calls = []
        bus.once("t", lambda e: calls.append(1))
        bus.emit("t")
        bus.emit("t")
        assert calls == [1]
        assert bus._subscribers["t"] == []

    def test_once_removal_keeps_identical_callbacks(self, bus):
        calls = []

        def handler(e):
            calls.append(1)

        bus.on("t", handler)
        bus.once("t", handler)
        bus.emit("t")
        bus.emit("t")
        assert len(calls) == 3

    def test_off(self, bus):
        def handler(e):
            pass

        bus.on("t", handler)
        assert bus.off("t", handler) is True
        assert bus.off("t", handler) is False

    def test_mute_keeps_history(self, bus):
        calls = []
        bus.on("t", lambda e: calls.append(1))
        bus.mute("t")
        bus.emit("t")
        bus.unmute("t")
        bus.emit("t")
        assert calls == [1]
        assert len(bus.history("t")) == 2


class TestHistory:

    def test_capped(self):
        bus = EventBus(history_size=3)
        for i in range(10):
            bus.emit("t", {"i": i})
        assert [e.data["i"] for e in bus.history()] == [7, 8, 9]

    def test_filter_and_limit(self, bus):
        for i in range(5):
            bus.emit("a", {"i": i})
            bus.emit("b", {"i": i})
        assert [e.data["i"] for e in bus.history("a", limit=2)] == [3, 4]

    def test_reset(self, bus):
        bus.on("t", lambda e: None)
        bus.emit("t")
        bus.reset()
        assert bus.history() == []
        assert bus._subscribers == {}


class TestRecursion:

    def test_runaway_chain_cut_off(self, bus):
        depths = []

        def echo(e):
            depths.append(e.data["depth"])
            bus.emit("t", {"depth": e.data["depth"] + 1})

        bus.on("t", echo)
        bus.emit("t", {"depth": 1})
        assert depths == [1, 2, 3]


class TestThreadSafety:

    def test_concurrent_emits(self, bus):
        count = {"n": 0}
        lock = threading.Lock()

        def handler(e):
            with lock:
                count["n"] += 1

        bus.on("t", handler)
        threads = [threading.Thread(target=bus.emit, args=("t",)) for _ in range(100)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert count["n"] == 100
