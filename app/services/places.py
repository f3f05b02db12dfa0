"""Place details and reviews from the Google Places API (v1)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol
from urllib.parse import quote

import httpx

from app.core.entities import PlaceDetails, Review
from app.core.exceptions import TransientProviderError, UpstreamServiceError
from app.core.metrics import track_provider_call

logger = logging.getLogger(__name__)

PLACES_BASE_URL = "https://places.googleapis.com/v1"
DETAILS_FIELD_MASK = "id,displayName,formattedAddress,location,rating,userRatingCount,reviews"
DEFAULT_REGION = "US"

# (region, min_lat, max_lat, min_lng, max_lng), checked in order.
REGION_BOUNDS = (
    ("US", 24.0, 50.0, -125.0, -66.0),
    ("CA", 41.0, 84.0, -141.0, -52.0),
    ("GB", 49.0, 61.0, -8.0, 2.0),
    ("AU", -44.0, -10.0, 112.0, 154.0),
)


class PlaceSource(Protocol):
    def get_details(self, place_id: str) -> PlaceDetails | None: ...


def determine_region(latitude: float | None, longitude: float | None) -> str:
    if latitude is None or longitude is None:
        return DEFAULT_REGION
    for region, min_lat, max_lat, min_lng, max_lng in REGION_BOUNDS:
        if min_lat <= latitude <= max_lat and min_lng <= longitude <= max_lng:
            return region
    return DEFAULT_REGION


def _parse_publish_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("unparseable publishTime=%r", value)
        return None


def _parse_review(raw: dict) -> Review:
    text = (raw.get("text") or {}).get("text") or (raw.get("originalText") or {}).get("text") or ""
    return Review(
        author_name=(raw.get("authorAttribution") or {}).get("displayName") or "Anonymous",
        text=text,
        rating=int(raw.get("rating") or 0),
        published_at=_parse_publish_time(raw.get("publishTime")),
    )


def parse_place_details(payload: dict, place_id: str) -> PlaceDetails:
    location = payload.get("location") or {}
    latitude = location.get("latitude")
    longitude = location.get("longitude")
    return PlaceDetails(
        place_id=payload.get("id") or place_id,
        name=(payload.get("displayName") or {}).get("text") or "",
        address=payload.get("formattedAddress") or "",
        region=determine_region(latitude, longitude),
        reviews=[_parse_review(r) for r in payload.get("reviews") or []],
        latitude=latitude,
        longitude=longitude,
    )


class GooglePlacesClient:
    def __init__(
        self,
        api_key: str | None,
        timeout_seconds: float = 15.0,
        base_url: str = PLACES_BASE_URL,
        client: httpx.Client | None = None,
    ):
        if not api_key:
            raise RuntimeError("GOOGLE_PLACES_API_KEY must be configured")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def get_details(self, place_id: str) -> PlaceDetails | None:
        """Fetch a place with its reviews. ``None`` means the id is unknown or invalid."""
        url = f"{self._base_url}/places/{quote(place_id, safe='')}"
        headers = {"X-Goog-Api-Key": self._api_key, "X-Goog-FieldMask": DETAILS_FIELD_MASK}
        try:
            with track_provider_call("places.details"):
                response = self._client.get(url, headers=headers)
        except httpx.TransportError as exc:
            raise TransientProviderError(f"Places API unreachable: {exc}", provider="google_places") from exc

        if response.status_code in (400, 404):
            logger.warning("place not found place_id=%s status=%s", place_id, response.status_code)
            return None
        if response.status_code >= 400:
            logger.error(
                "places api error place_id=%s status=%s body=%s",
                place_id,
                response.status_code,
                response.text[:500],
            )
            raise UpstreamServiceError(
                f"Places API returned {response.status_code}",
                provider="google_places",
            )

        details = parse_place_details(response.json(), place_id)
        logger.info("place details fetched place_id=%s reviews=%s", place_id, len(details.reviews))
        return details

    def close(self) -> None:
        self._client.close()
