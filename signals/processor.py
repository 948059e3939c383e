# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Entry signal processing — extract, then compare-and-commit.

Extraction can take seconds. If the user edits the entry meanwhile, the
entry's extraction marker moves on and the result we're holding is for
text that no longer exists. So:

    1. extract (slow, no lock held)
    2. in one store transaction: re-read the marker; if it still equals
       the version we started with, write; otherwise write nothing and
       report stale=True

Two extractions for the same entry may run at once. Only the one whose
version matches at commit time lands.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from core.events import Events, bus
from core.schemas import HearthError, HearthValidationError, JournalEntry, ProcessResult
from core.store import DocumentStore, get_store
from signals.extractor import Comprehend, extract_signals
from signals.repository import (
    ENTRIES, VERSION_FIELD, bump_extraction_version, delete_signals_for_entry, stage_signals,
)

logger = logging.getLogger("hearth.signals.processor")


def _entry_ids(entry: Union[JournalEntry, Dict[str, Any]], user_id: Optional[str]):
    if isinstance(entry, JournalEntry):
        data = entry.to_doc()
    else:
        data = dict(entry)
    entry_id = data.get("id")
    user_id = user_id or data.get("user_id") or data.get("uid")
    if not entry_id or not user_id:
        raise HearthValidationError("Entry processing needs both an entry id and a user id")
    return entry_id, user_id


def process_entry_signals(
    entry: Union[JournalEntry, Dict[str, Any]],
    text: str,
    extraction_version: int,
    user_id: Optional[str] = None,
    reference: Optional[datetime] = None,
    comprehend: Optional[Comprehend] = None,
    store: Optional[DocumentStore] = None,
) -> ProcessResult:
    """
    Extract signals from text and persist them if the entry hasn't moved on.

    Args:
        entry: JournalEntry or dict with "id" (and "user_id" unless passed)
        text: Entry text to extract from
        extraction_version: Marker value this extraction was started for
        user_id: Owner, when entry doesn't carry it
        reference: "Now" for relative dates
        comprehend: Comprehension collaborator (default: local model)

    Returns:
        ProcessResult. stale=True means the marker changed and nothing was
        written. Store failures come back in error, never raised.
    """
    entry_id, user_id = _entry_ids(entry, user_id)
    store = store or get_store()
    logger.info("Processing signals for entry %s (version %d)", entry_id, extraction_version)

    extraction = extract_signals(text, reference=reference, comprehend=comprehend)

    try:
        with store.transaction(user_id) as txn:
            doc = txn.get(ENTRIES, entry_id)
            current = int(doc.get(VERSION_FIELD) or 0) if doc is not None else None
            if current is not None and current != extraction_version:
                stale = True
                stored = []
            else:
                stale = False
                stored = stage_signals(
                    txn, extraction.signals, entry_id, user_id, extraction_version, store=store,
                )
    except (HearthError, ValidationError) as e:
        logger.error("Error processing signals for entry %s (user %s): %s", entry_id, user_id, e)
        return ProcessResult(reasoning=extraction.reasoning, error=str(e))

    if stale:
        logger.info(
            "Entry %s was edited during extraction (current: %s, expected: %d), discarding stale results",
            entry_id, current, extraction_version,
        )
        bus.emit(Events.SIGNALS_DISCARDED_STALE, {
            "user_id": user_id,
            "entry_id": entry_id,
            "expected_version": extraction_version,
            "current_version": current,
        }, source="signals.processor")
        return ProcessResult(stale=True, reasoning="Stale extraction discarded")

    logger.info("Saved %d signals for entry %s", len(stored), entry_id)
    if stored:
        bus.emit(Events.SIGNALS_EXTRACTED, {
            "user_id": user_id,
            "entry_id": entry_id,
            "version": extraction_version,
            "signal_ids": [s.id for s in stored],
        }, source="signals.processor")

    return ProcessResult(
        signals=stored,
        has_temporal_content=extraction.has_temporal_content,
        reasoning=extraction.reasoning,
    )


def reprocess_signals_on_edit(
    entry_id: str,
    new_text: str,
    user_id: str,
    new_version: Optional[int] = None,
    reference: Optional[datetime] = None,
    comprehend: Optional[Comprehend] = None,
    store: Optional[DocumentStore] = None,
) -> ProcessResult:
    """Wipe the entry's signals, then extract fresh under a new version."""
    store = store or get_store()
    logger.info("Re-processing signals for edited entry %s", entry_id)

    delete_signals_for_entry(entry_id, user_id, store=store)
    if new_version is None:
        new_version = bump_extraction_version(user_id, entry_id, store=store)

    return process_entry_signals(
        {"id": entry_id},
        new_text,
        new_version,
        user_id=user_id,
        reference=reference,
        comprehend=comprehend,
        store=store,
    )
