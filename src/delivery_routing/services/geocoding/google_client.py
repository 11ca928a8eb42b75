"""Google Maps geocoding integration."""

from __future__ import annotations

import logging

import googlemaps
from googlemaps.exceptions import ApiError, HTTPError, Timeout, TransportError

from ...config import settings
from ...models.domain import Coordinate
from .errors import ResolutionError

logger = logging.getLogger(__name__)


class GoogleGeocodingClient:
    """Resolves one address per call through the Google Geocoding API."""

    def __init__(self, api_key: str | None = None, client: googlemaps.Client | None = None) -> None:
        if client is not None:
            self.client = client
            return
        key = (api_key or settings.google_maps_api_key or "").strip()
        if not key:
            raise ValueError("Google Maps API key is not configured.")
        self.client = googlemaps.Client(key=key)

    def geocode(self, address: str) -> Coordinate:
        if not address or not address.strip():
            raise ResolutionError(address, "empty_address", "Empty address provided")

        try:
            results = self.client.geocode(address)
        except (ApiError, HTTPError, Timeout, TransportError) as exc:
            logger.error("Google Maps API error for address '%s': %s", address, exc)
            raise ResolutionError(address, "provider_error", str(exc)) from exc

        if not results:
            raise ResolutionError(address, "not_found", "Address could not be geocoded")

        location = results[0].get("geometry", {}).get("location", {})
        lat = location.get("lat")
        lng = location.get("lng")
        if lat is None or lng is None:
            raise ResolutionError(address, "not_found", "No coordinates in geocoding result")

        coordinate = Coordinate(lat=float(lat), lng=float(lng))
        if not coordinate.is_valid():
            raise ResolutionError(
                address,
                "invalid_coordinates",
                f"Coordinates lat={lat}, lng={lng} out of range",
            )
        return coordinate
