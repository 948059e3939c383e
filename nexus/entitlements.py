# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Feature entitlements.

Feature keys are "{area}.{feature}". Anything listed in PREMIUM_FEATURES
needs an active subscription, stored at users/{uid}/settings/subscription:

    {"status": "active" | "trialing" | "cancelled" | "expired",
     "plan": "monthly" | "annual",
     "expires_at": ISO timestamp or null}

Fails closed: unreadable subscription or unknown feature means not entitled.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from core.schemas import Entitlement, HearthError, to_local_naive
from core.store import DocumentStore, get_store

logger = logging.getLogger("hearth.nexus.entitlements")

SETTINGS = "settings"
SUBSCRIPTION_DOC = "subscription"

PREMIUM_FEATURES = {
    "reports.monthly": True,
    "reports.quarterly": True,
    "reports.annual": True,
    "voice.insights": True,
    "prompts.gaps": True,
    "guided.insight_exploration": True,
}

FREE_FEATURES = ("reports.weekly",)

GAP_PROMPTS_FEATURE = "prompts.gaps"


def is_known_feature(feature_key: str) -> bool:
    return feature_key in FREE_FEATURES or feature_key in PREMIUM_FEATURES


def requires_premium(feature_key: str) -> bool:
    return PREMIUM_FEATURES.get(feature_key) is True


def _parse_expiry(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return to_local_naive(parsed)


def derive_premium_from_subscription(sub: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> bool:
    """
    active/trialing: premium until expires_at (forever without one).
    cancelled: premium until expires_at, if it has one.
    """
    if not sub:
        return False
    now = now or datetime.now()
    status = sub.get("status")
    try:
        expires_at = _parse_expiry(sub.get("expires_at"))
    except ValueError:
        logger.warning("Unparseable subscription expiry: %r", sub.get("expires_at"))
        return False

    if status in ("active", "trialing"):
        return expires_at is None or expires_at > now
    if status == "cancelled" and expires_at is not None:
        return expires_at > now
    return False


def get_subscription(user_id: str, store: Optional[DocumentStore] = None) -> Optional[Dict[str, Any]]:
    if not user_id:
        return None
    try:
        return (store or get_store()).get(user_id, SETTINGS, SUBSCRIPTION_DOC)
    except HearthError as e:
        logger.error("Error fetching subscription for user %s: %s", user_id, e)
        return None


def is_premium(user_id: str, now: Optional[datetime] = None, store: Optional[DocumentStore] = None) -> bool:
    return derive_premium_from_subscription(get_subscription(user_id, store=store), now=now)


def check_entitlement(
    user_id: str,
    feature_key: str,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> Entitlement:
    if not is_known_feature(feature_key):
        return Entitlement(entitled=False, reason="unknown_feature")
    if not requires_premium(feature_key):
        return Entitlement(entitled=True, reason="free_feature")
    if is_premium(user_id, now=now, store=store):
        return Entitlement(entitled=True, reason="premium_active")
    return Entitlement(entitled=False, reason="premium_required")
