# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Hearth Event Bus — Decoupled pub/sub between signal and nexus modules.

Instead of the lifecycle engine importing whatever cares about a goal
being achieved, it emits:
    bus.emit(Events.SIGNAL_STATE_TRANSITIONED, {"signal_id": sid, "to": "achieved"})

and anyone interested subscribes:
    bus.on(Events.SIGNAL_STATE_TRANSITIONED, my_handler, priority=10)
    bus.once(Events.INSIGHTS_REVEALED, notify_handler)

Handlers run synchronously, highest priority first, outside the bus lock.
A failing handler is logged and never reaches the emitter. Emits nested
deeper than 3 levels are dropped.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger("hearth.events")

_MAX_EMIT_DEPTH = 3


# ============================================================================
# EVENT TYPES
# ============================================================================

class Events:
    """Registry of all event types. Use these constants, not raw strings."""

    # --- Signal extraction ---
    SIGNALS_EXTRACTED = "signals_extracted"
    SIGNALS_DISCARDED_STALE = "signals_discarded_stale"
    SIGNALS_DELETED = "signals_deleted"

    # --- Lifecycle ---
    SIGNAL_STATE_CREATED = "signal_state_created"
    SIGNAL_STATE_TRANSITIONED = "signal_state_transitioned"
    CONTRADICTIONS_RESOLVED = "contradictions_resolved"
    EXCLUSION_ADDED = "exclusion_added"

    # --- Nexus ---
    GAP_PROMPT_GENERATED = "gap_prompt_generated"
    GAP_ENGAGEMENT_TRACKED = "gap_engagement_tracked"
    INSIGHTS_SCHEDULED = "insights_scheduled"
    INSIGHTS_REVEALED = "insights_revealed"


@dataclass
class Event:
    """A single emitted event."""
    type: str
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    source: Optional[str] = None


@dataclass
class Subscriber:
    callback: Callable[[Event], None]
    priority: int = 0  # higher = called first
    once: bool = False
    source: Optional[str] = None


class EventBus:
    """Priority-ordered synchronous bus with bounded history. Thread-safe."""

    def __init__(self, history_size: int = 100):
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._history: List[Event] = []
        self._history_size = history_size
        self._lock = threading.Lock()
        self._muted: Set[str] = set()
        self._local = threading.local()

    def _subscribe(self, event_type: str, sub: Subscriber) -> None:
        with self._lock:
            subs = self._subscribers.setdefault(event_type, [])
            subs.append(sub)
            subs.sort(key=lambda s: -s.priority)

    def on(
        self,
        event_type: str,
        callback: Callable[[Event], None],
        priority: int = 0,
        source: Optional[str] = None,
    ) -> None:
        """Subscribe to an event type."""
        self._subscribe(event_type, Subscriber(callback, priority, False, source))

    def once(
        self,
        event_type: str,
        callback: Callable[[Event], None],
        priority: int = 0,
        source: Optional[str] = None,
    ) -> None:
        """Subscribe to an event, auto-remove after first call."""
        self._subscribe(event_type, Subscriber(callback, priority, True, source))

    def off(self, event_type: str, callback: Callable) -> bool:
        """Unsubscribe a callback. Returns True if found and removed."""
        with self._lock:
            subs = self._subscribers.get(event_type, [])
            kept = [s for s in subs if s.callback is not callback]
            self._subscribers[event_type] = kept
            return len(kept) < len(subs)

    def emit(
        self,
        event_type: str,
        data: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
    ) -> Event:
        """Dispatch an event to its subscribers and return it."""
        event = Event(type=event_type, data=data or {}, source=source)

        depth = getattr(self._local, "depth", 0) + 1
        if depth > _MAX_EMIT_DEPTH:
            logger.warning(
                "Event recursion depth %d exceeded for %s, skipping",
                depth, event_type,
            )
            return event

        self._local.depth = depth
        try:
            with self._lock:
                self._history.append(event)
                if len(self._history) > self._history_size:
                    self._history = self._history[-self._history_size:]
                if event_type in self._muted:
                    return event
                subs = list(self._subscribers.get(event_type, []))

            fired_once = []
            for sub in subs:
                try:
                    sub.callback(event)
                except Exception as e:
                    logger.error(
                        "Event handler error: %s -> %s: %s",
                        event_type,
                        sub.source or getattr(sub.callback, "__name__", "?"),
                        e,
                    )
                if sub.once:
                    fired_once.append(sub)

            if fired_once:
                with self._lock:
                    done = {id(s) for s in fired_once}
                    current = self._subscribers.get(event_type, [])
                    self._subscribers[event_type] = [
                        s for s in current if id(s) not in done
                    ]
            return event
        finally:
            self._local.depth = depth - 1

    def mute(self, event_type: str) -> None:
        with self._lock:
            self._muted.add(event_type)

    def unmute(self, event_type: str) -> None:
        with self._lock:
            self._muted.discard(event_type)

    def history(self, event_type: Optional[str] = None, limit: int = 20) -> List[Event]:
        """Most recent events, oldest first."""
        with self._lock:
            events = self._history
            if event_type:
                events = [e for e in events if e.type == event_type]
            return list(events[-limit:])

    def reset(self) -> None:
        """Clear all subscribers, mutes and history. For testing."""
        with self._lock:
            self._subscribers.clear()
            self._history.clear()
            self._muted.clear()


# Global singleton
bus = EventBus()
