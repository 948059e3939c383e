# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Analytics documents — precomputed per-user aggregates under
users/{uid}/analytics/{name}.json.

The topic coverage snapshot is produced elsewhere (the analytics job);
this module only reads and writes it.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from core.schemas import CoverageSnapshot
from core.store import DocumentStore, get_store

logger = logging.getLogger("hearth.nexus.analytics")

COLLECTION = "analytics"
TOPIC_COVERAGE = "topic_coverage"


def get_analytics_doc(user_id: str, name: str, store: Optional[DocumentStore] = None) -> Optional[Dict[str, Any]]:
    return (store or get_store()).get(user_id, COLLECTION, name)


def set_analytics_doc(
    user_id: str,
    name: str,
    data: Dict[str, Any],
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> Dict[str, Any]:
    """Merge data into an analytics document, stamping last_updated."""
    stamped = dict(data)
    stamped["last_updated"] = (now or datetime.now()).isoformat()
    return (store or get_store()).merge(user_id, COLLECTION, name, stamped)


def get_topic_coverage(user_id: str, store: Optional[DocumentStore] = None) -> Optional[CoverageSnapshot]:
    doc = get_analytics_doc(user_id, TOPIC_COVERAGE, store=store)
    if not doc:
        return None
    return CoverageSnapshot.model_validate(doc)


def save_topic_coverage(
    user_id: str,
    snapshot: CoverageSnapshot,
    store: Optional[DocumentStore] = None,
) -> CoverageSnapshot:
    """Replace the coverage snapshot. last_updated defaults to now."""
    if snapshot.last_updated is None:
        snapshot = snapshot.model_copy(update={"last_updated": datetime.now()})
    (store or get_store()).set(user_id, COLLECTION, TOPIC_COVERAGE, snapshot.to_doc())
    logger.debug("Saved topic coverage for user %s (%d domains)", user_id, len(snapshot.domains))
    return snapshot
