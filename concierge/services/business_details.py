"""Cache-aside lookup of enriched business details.

Order of resolution for ``get(business_id)``:

1. The internal BusinessRecord.  No record means no business: ``None``.
2. The detail cache.  A fresh entry is used as-is.
3. The external provider.  The result is written back to the cache
   (best-effort) before use.

The internal record is always merged on top of the provider fields, so the
directory's moderation state wins over anything the provider says.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from concierge.errors import LookupUnavailable
from concierge.models import BusinessDetails
from concierge.services.cache import BusinessDetailCache
from concierge.services.directory import DirectoryStore
from concierge.services.places_client import PlacesAPIError

logger = logging.getLogger(__name__)


class BusinessLookup(Protocol):
    def get_details(self, place_id: str) -> dict[str, Any] | None: ...


class BusinessDetailsService:
    def __init__(
        self,
        directory: DirectoryStore,
        cache: BusinessDetailCache,
        lookup: BusinessLookup,
    ) -> None:
        self._directory = directory
        self._cache = cache
        self._lookup = lookup

    def get(self, business_id: str) -> BusinessDetails | None:
        record = self._directory.get_business(business_id)
        if record is None:
            return None

        entry = self._cache.get(business_id)
        if entry is not None:
            provider_data = entry.data
        else:
            try:
                fetched = self._lookup.get_details(business_id)
            except PlacesAPIError as exc:
                logger.warning("Business lookup failed for %s: %s", business_id, exc)
                raise LookupUnavailable(
                    f"Details for business {business_id!r} are temporarily unavailable"
                ) from exc
            if fetched is None:
                return None
            self._cache.set(business_id, fetched)
            provider_data = fetched

        merged = {**provider_data, **record.model_dump(exclude_none=True)}
        return BusinessDetails.model_validate(merged)
