"""Google Distance Matrix integration."""

from __future__ import annotations

import logging
from typing import Sequence

import googlemaps
from googlemaps.exceptions import ApiError, HTTPError, Timeout, TransportError

from ...config import settings
from ...models.domain import Coordinate
from .errors import ProviderError
from .models import MatrixElement

logger = logging.getLogger(__name__)

# Standard-plan limit on origins x destinations per request.
MAX_ELEMENTS_PER_REQUEST = 100
MAX_LOCATIONS_PER_SIDE = 25


class GoogleDistanceMatrixClient:
    def __init__(self, api_key: str | None = None, client: googlemaps.Client | None = None) -> None:
        if client is not None:
            self.client = client
            return
        key = (api_key or settings.google_maps_api_key or "").strip()
        if not key:
            raise ValueError("Google Maps API key is not configured.")
        self.client = googlemaps.Client(key=key)

    def _request(
        self,
        origins: Sequence[Coordinate],
        destinations: Sequence[Coordinate],
        mode: str,
    ) -> list[list[MatrixElement]]:
        try:
            response = self.client.distance_matrix(
                origins=[point.as_tuple() for point in origins],
                destinations=[point.as_tuple() for point in destinations],
                mode=mode,
                units="metric",
            )
        except (ApiError, HTTPError, Timeout, TransportError) as exc:
            raise ProviderError(f"Google Distance Matrix request failed: {exc}") from exc

        if response.get("status") != "OK":
            raise ProviderError(f"Google Distance Matrix returned status {response.get('status')}")

        rows = response.get("rows", [])
        if len(rows) != len(origins):
            raise ProviderError(f"Expected {len(origins)} rows, got {len(rows)}")

        grid: list[list[MatrixElement]] = []
        for row in rows:
            elements = row.get("elements", [])
            if len(elements) != len(destinations):
                raise ProviderError(f"Expected {len(destinations)} elements per row, got {len(elements)}")
            grid.append(
                [
                    MatrixElement(
                        status=element.get("status", "NOT_FOUND"),
                        distance_meters=(element.get("distance") or {}).get("value"),
                        duration_seconds=(element.get("duration") or {}).get("value"),
                    )
                    for element in elements
                ]
            )
        return grid

    def matrix(
        self,
        origins: Sequence[Coordinate],
        destinations: Sequence[Coordinate],
        mode: str = "driving",
    ) -> list[list[MatrixElement]]:
        """Stitch the full grid from sub-requests that respect the element limit."""
        if not origins or not destinations:
            raise ValueError("At least one origin and one destination are required.")

        cols = min(len(destinations), MAX_LOCATIONS_PER_SIDE)
        rows = max(1, min(len(origins), MAX_ELEMENTS_PER_REQUEST // cols))

        grid: list[list[MatrixElement]] = [[] for _ in origins]
        for r0 in range(0, len(origins), rows):
            for c0 in range(0, len(destinations), cols):
                block = self._request(origins[r0 : r0 + rows], destinations[c0 : c0 + cols], mode)
                for offset, block_row in enumerate(block):
                    grid[r0 + offset].extend(block_row)
        logger.debug("Fetched %dx%d distance matrix from Google", len(origins), len(destinations))
        return grid
