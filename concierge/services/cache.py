"""Time-bounded cache of provider business details, stored in the database.

Design decisions
────────────────
• **Cache-aside**: this class only reads and writes entries.  The caller
  (``BusinessDetailsService``) decides when to hit the provider.
• **TTL is the only invalidation.**  No size-based eviction; an entry older
  than the TTL is reported as a miss and overwritten by the next ``set``.
• **Writes are best-effort.**  A failing ``set`` is logged and swallowed so
  the read path that already has provider data still answers the user.
• **Provider-only payload.**  The internal BusinessRecord is merged on top by
  the caller and never stored here.

Usage
─────
>>> cache = BusinessDetailCache(db, ttl=timedelta(hours=720))
>>> cache.set("biz-1", {"name": "Bar Pepe", "rating": 4.5})
>>> cache.get("biz-1").data["rating"]
4.5
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from concierge.models import CacheEntry
from concierge.services.database import BusinessCacheRow, Database, as_utc

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=720)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BusinessDetailCache:
    """Cache of enriched business details keyed by business id."""

    def __init__(
        self,
        db: Database,
        *,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def get(self, business_id: str) -> CacheEntry | None:
        """Return the entry for *business_id*, or ``None`` if absent or stale."""
        with self._db.transaction() as s:
            row = s.get(BusinessCacheRow, business_id)
            if row is None:
                logger.debug("Cache MISS: %s", business_id)
                return None
            entry = CacheEntry(
                business_id=row.business_id,
                data=dict(row.data or {}),
                cached_at=as_utc(row.cached_at),
            )

        age = self._clock() - entry.cached_at
        if age > self._ttl:
            logger.debug(
                "Cache STALE: %s (age=%.1fh, ttl=%.1fh)",
                business_id, age.total_seconds() / 3600, self._ttl.total_seconds() / 3600,
            )
            return None

        logger.debug("Cache HIT: %s", business_id)
        return entry

    def set(self, business_id: str, data: dict[str, Any]) -> None:
        """Merge *data* into the entry and reset its timestamp.

        Never raises: a storage failure is logged and the caller carries on
        with the data it already has.
        """
        try:
            with self._db.transaction() as s:
                row = s.get(BusinessCacheRow, business_id)
                if row is None:
                    row = BusinessCacheRow(business_id=business_id, data={})
                    s.add(row)
                # Reassign so the JSON column is flagged dirty
                row.data = {**(row.data or {}), **data}
                row.cached_at = self._clock()
        except Exception:
            logger.exception("Cache write failed for %s", business_id)
            return

        logger.debug("Cache WROTE: %s (%d fields)", business_id, len(data))
