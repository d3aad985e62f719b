"""
Process-local cache for subscription look-ups made by the feature gate.

Entries are short lived. A subscription write marks its tenant on the
session and the entry is dropped once that session commits, so a reader
cannot re-cache the pre-commit row after the drop. A stale entry can still
survive at most one TTL on another worker.
"""
from dataclasses import dataclass
from typing import Optional

from cachetools import TTLCache
from sqlalchemy.ext.asyncio import AsyncSession

from emasjid_billing.core.config import settings

PENDING_INVALIDATIONS = "pending_subscription_invalidations"


@dataclass(frozen=True)
class SubscriptionSnapshot:
    subscription_id: int
    tenant_id: str
    tier: str
    status: str


subscription_cache: TTLCache = TTLCache(
    maxsize=settings.FEATURE_CACHE_MAX_SIZE, ttl=settings.FEATURE_CACHE_TTL_SECONDS
)


def get_cached_subscription(tenant_id: str) -> Optional[SubscriptionSnapshot]:
    return subscription_cache.get(tenant_id)


def cache_subscription(snapshot: SubscriptionSnapshot) -> None:
    subscription_cache[snapshot.tenant_id] = snapshot


def invalidate_subscription(db: AsyncSession, tenant_id: str) -> None:
    """Drop the tenant's entry when this session's transaction commits."""
    db.info.setdefault(PENDING_INVALIDATIONS, set()).add(tenant_id)


def apply_invalidations(db: AsyncSession) -> None:
    for tenant_id in db.info.pop(PENDING_INVALIDATIONS, None) or ():
        subscription_cache.pop(tenant_id, None)


def discard_invalidations(db: AsyncSession) -> None:
    db.info.pop(PENDING_INVALIDATIONS, None)
