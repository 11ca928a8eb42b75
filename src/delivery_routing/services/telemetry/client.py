"""HTTP client for the vehicle tracking provider."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ...config import settings

logger = logging.getLogger(__name__)


class TelemetryError(RuntimeError):
    """The tracking provider could not be queried."""


class TrackingClient:
    """Thin read-only wrapper around the tracking REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.tracking_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.tracking_api_key
        self.username = username if username is not None else settings.tracking_username
        self.password = password if password is not None else settings.tracking_password
        self.timeout = timeout or settings.tracking_timeout_seconds
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        auth = (self.username, self.password) if self.username and self.password else None
        return httpx.Client(
            base_url=self.base_url,
            headers=headers,
            auth=auth,
            timeout=httpx.Timeout(self.timeout, connect=5.0),
            transport=self._transport,
        )

    def _get(self, path: str) -> Any:
        with self._get_client() as client:
            try:
                response = client.get(path)
            except httpx.HTTPError as exc:
                raise TelemetryError(f"Tracking provider unreachable: {exc}") from exc
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        try:
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise TelemetryError(f"Tracking provider returned HTTP {response.status_code}") from exc
        except ValueError as exc:
            raise TelemetryError(f"Tracking provider returned invalid JSON: {exc}") from exc

    def get_location(self, vehicle_id: str) -> dict | None:
        """Latest position payload for one vehicle, or ``None`` if the provider does not know it."""
        return self._get(f"/carriers/{vehicle_id}/location")

    def get_all_locations(self) -> list[dict]:
        payload = self._get("/carriers/locations")
        if payload is None:
            return []
        if isinstance(payload, dict):
            payload = payload.get("items") or payload.get("carriers") or []
        if not isinstance(payload, list):
            raise TelemetryError("Tracking provider returned an unexpected bulk payload.")
        logger.debug("Fetched %d vehicle locations", len(payload))
        return payload
