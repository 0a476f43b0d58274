"""HTTP client for the Google Places "place details" API with retry logic
and timeout handling.

Places API docs: https://developers.google.com/maps/documentation/places/web-service/details
The API key travels as the ``key`` query parameter.  Errors come back in two
layers: the HTTP status code and a ``status`` field inside a 200 body.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import httpx

from concierge.config import GOOGLE_PLACES_API_KEY, PLACES_BASE_URL, PLACES_LANGUAGE
from concierge.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0

MAX_PHOTOS = 10
PHOTO_MAX_WIDTH = 800

DETAIL_FIELDS = (
    "name",
    "formatted_address",
    "international_phone_number",
    "website",
    "url",
    "rating",
    "user_ratings_total",
    "photos",
    "opening_hours",
    "geometry",
    "reviews",
    "price_level",
    "editorial_summary",
)

_NOT_FOUND_STATUSES = frozenset({"NOT_FOUND", "ZERO_RESULTS"})
_RETRYABLE_STATUSES = frozenset({"UNKNOWN_ERROR"})


class PlacesAPIError(Exception):
    """Raised when a Places API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class PlacesClient:
    """Thin wrapper around the Places details endpoint with automatic retries.

    ``get_details`` returns the normalised field dict the detail cache
    stores, or ``None`` when the provider does not know the place.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        language: str | None = None,
        http_client: httpx.Client | None = None,
    ):
        self._api_key = api_key or GOOGLE_PLACES_API_KEY
        self._base_url = (base_url or PLACES_BASE_URL).rstrip("/")
        self._language = language or PLACES_LANGUAGE
        self._client = http_client or httpx.Client(
            base_url=self._base_url,
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """GET *path* with exponential-backoff retries.

        Returns the decoded body for ``OK`` and not-found statuses; the
        caller inspects ``status`` to tell them apart.
        """
        params = {**params, "key": self._api_key}
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = self._client.get(path, params=params)
                if response.status_code >= 500:
                    raise PlacesAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise PlacesAPIError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )

                try:
                    body = response.json()
                except ValueError as exc:
                    raise PlacesAPIError(
                        f"Unreadable Places response: {exc}",
                        status_code=response.status_code,
                    ) from exc
                status = body.get("status", "OK")
                if status == "OK" or status in _NOT_FOUND_STATUSES:
                    return body
                if status in _RETRYABLE_STATUSES:
                    raise PlacesAPIError(f"Places status {status}", status_code=503)
                raise PlacesAPIError(
                    f"Places status {status}: {body.get('error_message', '')}".rstrip(": "),
                    status_code=response.status_code,
                )

            except httpx.TransportError as exc:
                last_error = exc
                logger.warning(
                    "Places API attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except PlacesAPIError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Places API server error on attempt %d/%d. Retrying…",
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    raise  # 4xx and hard statuses are not retried

            if attempt < MAX_RETRIES:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise PlacesAPIError(
            f"Places API request failed after {MAX_RETRIES} retries: {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )

    def _photo_url(self, reference: str) -> str:
        return (
            f"{self._base_url}/photo?maxwidth={PHOTO_MAX_WIDTH}"
            f"&photo_reference={reference}&key={self._api_key}"
        )

    def _normalise(self, result: dict[str, Any]) -> dict[str, Any]:
        """Flatten a Places ``result`` into the fields the cache stores."""
        hours = result.get("opening_hours") or {}
        summary = result.get("editorial_summary") or {}
        photos = [
            {
                "photo_reference": p["photo_reference"],
                "width": p.get("width"),
                "height": p.get("height"),
                "url": self._photo_url(p["photo_reference"]),
            }
            for p in (result.get("photos") or [])[:MAX_PHOTOS]
            if p.get("photo_reference")
        ]
        data = {
            "display_name": result.get("name"),
            "formatted_address": result.get("formatted_address"),
            "international_phone_number": result.get("international_phone_number"),
            "website": result.get("website"),
            "url": result.get("url"),
            "rating": result.get("rating"),
            "user_ratings_total": result.get("user_ratings_total"),
            "opening_hours": hours.get("weekday_text") or [],
            "is_open_now": hours.get("open_now"),
            "photos": photos,
            "reviews": result.get("reviews") or [],
            "geometry": result.get("geometry"),
            "price_level": result.get("price_level"),
            "editorial_summary": summary.get("overview"),
        }
        return {k: v for k, v in data.items() if v is not None}

    # ── Public API ───────────────────────────────────────────────────

    def get_details(self, place_id: str) -> dict[str, Any] | None:
        """Fetch details for *place_id*, or ``None`` if the provider has none."""
        t0 = time.perf_counter()
        try:
            body = self._request(
                "/details/json",
                {
                    "place_id": place_id,
                    "fields": ",".join(DETAIL_FIELDS),
                    "language": self._language,
                },
            )
        except PlacesAPIError as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "places", "GET /details",
                error_type=str(exc.status_code or "unknown"), latency_ms=elapsed,
            )
            raise

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("places", "GET /details", latency_ms=elapsed)

        if body.get("status") in _NOT_FOUND_STATUSES:
            logger.info("Places has no details for %s (%s)", place_id, body["status"])
            return None
        return self._normalise(body.get("result") or {})

    def close(self) -> None:
        self._client.close()


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: PlacesClient | None = None
_client_lock = threading.Lock()


def get_places_client() -> PlacesClient:
    """Return a module-level PlacesClient singleton.

    Double-checked locking: the lock is only taken on first initialisation.
    """
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = PlacesClient()
    return _client
