# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Entry and signal persistence.

    users/{uid}/entries/{entry_id}.json   JournalEntry (+ extraction marker)
    users/{uid}/signals/{signal_id}.json  StoredSignal

Every entry carries signal_extraction_version. Each edit bumps it, and
signals are written tagged with the version they were extracted from, so
a slow extraction for an old version can be recognized and thrown away.
"""

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Union

from core.events import Events, bus
from core.schemas import (
    HearthValidationError,
    JournalEntry,
    NotFoundError,
    Signal,
    StoredSignal,
)
from core.store import DocumentStore, WriteBatch, get_store

logger = logging.getLogger("hearth.signals.repository")

ENTRIES = "entries"
SIGNALS = "signals"
SIGNAL_STATUSES = ("active", "verified", "dismissed")
VERSION_FIELD = "signal_extraction_version"


def format_date_key(value: Union[date, datetime, str]) -> str:
    """YYYY-MM-DD for a date, datetime or ISO string."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.strftime("%Y-%m-%d")


# ============================================================================
# Entries
# ============================================================================

def get_entry(user_id: str, entry_id: str, store: Optional[DocumentStore] = None) -> Optional[JournalEntry]:
    doc = (store or get_store()).get(user_id, ENTRIES, entry_id)
    return JournalEntry.model_validate(doc) if doc else None


def save_entry(user_id: str, entry: JournalEntry, store: Optional[DocumentStore] = None) -> JournalEntry:
    (store or get_store()).set(user_id, ENTRIES, entry.id, entry.to_doc())
    return entry


def get_extraction_version(user_id: str, entry_id: str, store: Optional[DocumentStore] = None) -> Optional[int]:
    """Current extraction marker, or None if the entry doesn't exist."""
    doc = (store or get_store()).get(user_id, ENTRIES, entry_id)
    if doc is None:
        return None
    return int(doc.get(VERSION_FIELD) or 0)


def bump_extraction_version(user_id: str, entry_id: str, store: Optional[DocumentStore] = None) -> int:
    """Increment the entry's extraction marker and return the new value."""
    store = store or get_store()
    with store.transaction(user_id) as txn:
        doc = txn.get(ENTRIES, entry_id)
        if doc is None:
            raise NotFoundError(f"Entry not found: {entry_id}")
        version = int(doc.get(VERSION_FIELD) or 0) + 1
        txn.merge(ENTRIES, entry_id, {VERSION_FIELD: version})
    logger.debug("Entry %s extraction version -> %d", entry_id, version)
    return version


# ============================================================================
# Signals
# ============================================================================

def stage_signals(
    writer: WriteBatch,
    signals: Sequence[Signal],
    entry_id: str,
    user_id: str,
    extraction_version: int,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> List[StoredSignal]:
    """
    Queue the version-checked replacement of an entry's signals on writer.

    Signals from older extraction versions are deleted; the new ones are
    written tagged with extraction_version. Nothing lands until the caller
    commits writer.
    """
    store = store or get_store()
    now = now or datetime.now()

    for doc in store.list(user_id, SIGNALS, where={"entry_id": entry_id}):
        if int(doc.get("extraction_version") or 0) < extraction_version:
            writer.delete(SIGNALS, doc["id"])

    stored = []
    for signal in signals:
        record = StoredSignal.model_validate({
            **signal.to_doc(),
            "id": store.new_id(),
            "entry_id": entry_id,
            "user_id": user_id,
            "extraction_version": extraction_version,
            "status": "active",
            "recorded_at": now,
            "created_at": now,
            "updated_at": now,
        })
        writer.set(SIGNALS, record.id, record.to_doc())
        stored.append(record)
    return stored


def save_signals_with_version_check(
    signals: Sequence[Signal],
    entry_id: str,
    user_id: str,
    extraction_version: int,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> List[StoredSignal]:
    """Replace older-version signals for an entry with these, in one batch."""
    store = store or get_store()
    batch = store.batch(user_id)
    stored = stage_signals(batch, signals, entry_id, user_id, extraction_version, now=now, store=store)
    batch.commit()
    logger.info("Saved %d signals for entry %s (version %d)", len(stored), entry_id, extraction_version)
    return stored


def delete_signals_for_entry(entry_id: str, user_id: str, store: Optional[DocumentStore] = None) -> int:
    """Delete every signal of an entry, any version. Returns the count."""
    store = store or get_store()
    batch = store.batch(user_id)
    for doc in store.list(user_id, SIGNALS, where={"entry_id": entry_id}):
        batch.delete(SIGNALS, doc["id"])
    count = batch.commit()

    logger.info("Deleted %d signals for entry %s", count, entry_id)
    if count:
        bus.emit(Events.SIGNALS_DELETED, {
            "user_id": user_id,
            "entry_id": entry_id,
            "count": count,
        }, source="signals.repository")
    return count


def _load_signals(user_id: str, store: DocumentStore, **where) -> List[StoredSignal]:
    return [StoredSignal.model_validate(d) for d in store.list(user_id, SIGNALS, where=where or None)]


def get_signals_for_entry(entry_id: str, user_id: str, store: Optional[DocumentStore] = None) -> List[StoredSignal]:
    return _load_signals(user_id, store or get_store(), entry_id=entry_id)


def get_signals_for_date(
    user_id: str,
    target_date: Union[date, datetime, str],
    store: Optional[DocumentStore] = None,
) -> List[StoredSignal]:
    """Non-dismissed signals anchored on the given calendar day."""
    key = format_date_key(target_date)
    return [
        s for s in _load_signals(user_id, store or get_store())
        if format_date_key(s.target_date) == key and s.status != "dismissed"
    ]


def get_future_signals(
    user_id: str,
    from_date: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> List[StoredSignal]:
    """Plans dated on or after from_date (default now), soonest first."""
    from_date = from_date or datetime.now()
    plans = [
        s for s in _load_signals(user_id, store or get_store(), type="plan")
        if s.target_date >= from_date and s.status != "dismissed"
    ]
    return sorted(plans, key=lambda s: s.target_date)


def _check_status(status: str) -> None:
    if status not in SIGNAL_STATUSES:
        raise HearthValidationError(f"Invalid signal status: {status!r}")


def update_signal_status(
    signal_id: str,
    user_id: str,
    status: str,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> None:
    batch_update_signal_status([signal_id], user_id, status, now=now, store=store)


def batch_update_signal_status(
    signal_ids: Iterable[str],
    user_id: str,
    status: str,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> int:
    """Set status on several signals at once. All or nothing."""
    _check_status(status)
    store = store or get_store()
    stamp = (now or datetime.now()).isoformat()

    ids = list(signal_ids)
    with store.transaction(user_id) as txn:
        for signal_id in ids:
            if txn.get(SIGNALS, signal_id) is None:
                raise NotFoundError(f"Signal not found: {signal_id}")
            txn.merge(SIGNALS, signal_id, {"status": status, "updated_at": stamp})

    logger.info("Updated %d signals to status: %s", len(ids), status)
    return len(ids)
