"""HTTP client for interacting with OSRM services."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

import httpx

from ...config import settings
from ...models.domain import Coordinate
from .errors import ProviderError
from .models import ELEMENT_OK, ELEMENT_ZERO_RESULTS, MatrixElement

# OSRM table endpoint has URL length limits; sources and destinations share one URL.
DEFAULT_MAX_COORDINATES_PER_REQUEST = 80
DEFAULT_MAX_PARALLEL_REQUESTS = 4

logger = logging.getLogger(__name__)


def _coordinate_path(coordinates: Sequence[Coordinate]) -> str:
    return ";".join(f"{point.lng},{point.lat}" for point in coordinates)


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _chunks(count: int, size: int) -> list[tuple[int, int]]:
    return [(start, min(start + size, count)) for start in range(0, count, size)]


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float = 60.0,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_coordinates_per_request: int = DEFAULT_MAX_COORDINATES_PER_REQUEST,
        max_parallel_requests: int = DEFAULT_MAX_PARALLEL_REQUESTS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        self.max_coordinates_per_request = max(2, max_coordinates_per_request)
        self.max_parallel_requests = max_parallel_requests
        self.timeout = timeout
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        """Each request gets its own client so chunk workers never share one."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            limits=httpx.Limits(max_connections=1, max_keepalive_connections=0),
            transport=self._transport,
        )

    def _table_single_request(
        self,
        coordinates: Sequence[Coordinate],
        sources: Sequence[int],
        destinations: Sequence[int],
    ) -> dict:
        """Make a single OSRM table request for a subset of coordinates."""
        params = {
            "annotations": "duration,distance",
            "sources": ";".join(str(i) for i in sources),
            "destinations": ";".join(str(i) for i in destinations),
        }
        url = f"{self.base_url}/table/v1/{self.profile}/{_coordinate_path(coordinates)}"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    data = response.json()
                    if not isinstance(data, dict):
                        raise ProviderError("OSRM returned a non-object JSON body.")
                    if data.get("code", "Ok") != "Ok":
                        raise ProviderError(f"OSRM table request failed: {data.get('message', data.get('code'))}")
                    if "durations" not in data or "distances" not in data:
                        raise ProviderError("OSRM response missing durations/distances.")
                    return data
                except httpx.HTTPStatusError as exc:
                    if exc.response.status_code == 414:
                        raise ProviderError(
                            f"OSRM request URL too large ({len(coordinates)} coordinates). "
                            f"Try reducing max_coordinates_per_request (current: {self.max_coordinates_per_request})"
                        ) from exc
                    status_code = exc.response.status_code
                    attempt += 1
                    if not _is_retryable(status_code) or attempt > self.max_retries:
                        raise ProviderError(f"OSRM returned HTTP {status_code}") from exc
                    time.sleep(self.backoff_seconds * attempt)
                except httpx.TimeoutException as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning("OSRM request timed out after %d attempts: %s", self.max_retries, exc)
                        raise ProviderError(f"OSRM request timed out: {exc}") from exc
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug("OSRM request timeout, retrying in %.1fs (attempt %d/%d)", wait_time, attempt, self.max_retries)
                    time.sleep(wait_time)
                except httpx.TransportError as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ProviderError(f"Failed to connect to OSRM service at {self.base_url}: {exc}") from exc
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug("OSRM network error, retrying in %.1fs (attempt %d/%d): %s", wait_time, attempt, self.max_retries, exc)
                    time.sleep(wait_time)
                except httpx.HTTPError as exc:
                    raise ProviderError(f"OSRM request failed: {exc}") from exc
                except ValueError as exc:
                    raise ProviderError(f"OSRM returned an unreadable response: {exc}") from exc
        finally:
            client.close()

    def _block(
        self,
        origins: Sequence[Coordinate],
        destinations: Sequence[Coordinate],
    ) -> list[list[MatrixElement]]:
        coordinates = [*origins, *destinations]
        sources = range(len(origins))
        targets = range(len(origins), len(coordinates))
        data = self._table_single_request(coordinates, list(sources), list(targets))
        for key in ("distances", "durations"):
            table = data[key]
            if (
                not isinstance(table, list)
                or len(table) != len(origins)
                or any(not isinstance(row, list) or len(row) != len(destinations) for row in table)
            ):
                raise ProviderError(
                    f"OSRM {key} table does not match the requested {len(origins)}x{len(destinations)} block."
                )

        rows: list[list[MatrixElement]] = []
        for i in range(len(origins)):
            row: list[MatrixElement] = []
            for j in range(len(destinations)):
                distance = data["distances"][i][j]
                duration = data["durations"][i][j]
                if distance is None or duration is None:
                    row.append(MatrixElement(status=ELEMENT_ZERO_RESULTS))
                else:
                    row.append(MatrixElement(status=ELEMENT_OK, distance_meters=distance, duration_seconds=duration))
            rows.append(row)
        return rows

    def matrix(
        self,
        origins: Sequence[Coordinate],
        destinations: Sequence[Coordinate],
        mode: str = "driving",
    ) -> list[list[MatrixElement]]:
        """Distance/duration grid from every origin to every destination.

        Unroutable pairs come back from OSRM as ``null`` and are reported as
        ``ZERO_RESULTS``. Any failed request fails the whole grid.
        """
        if mode != "driving":
            raise ValueError(f"Unsupported travel mode for OSRM: {mode}")
        if not origins or not destinations:
            raise ValueError("At least one origin and one destination are required for OSRM table.")

        if len(origins) + len(destinations) <= self.max_coordinates_per_request:
            return self._block(origins, destinations)

        start_time = time.time()
        half = self.max_coordinates_per_request // 2
        source_ranges = _chunks(len(origins), half)
        target_ranges = _chunks(len(destinations), half)
        total_requests = len(source_ranges) * len(target_ranges)
        logger.info(
            "Chunking OSRM table request: %dx%d coordinates in %d requests (parallel: %d)",
            len(origins),
            len(destinations),
            total_requests,
            self.max_parallel_requests,
        )

        grid: list[list[MatrixElement | None]] = [[None] * len(destinations) for _ in origins]
        with ThreadPoolExecutor(max_workers=self.max_parallel_requests) as executor:
            future_to_block = {
                executor.submit(self._block, origins[s0:s1], destinations[t0:t1]): (s0, t0)
                for s0, s1 in source_ranges
                for t0, t1 in target_ranges
            }
            for future in as_completed(future_to_block):
                s0, t0 = future_to_block[future]
                block = future.result()
                for i, row in enumerate(block):
                    grid[s0 + i][t0 : t0 + len(row)] = row

        logger.info("Completed OSRM table request: %d chunk requests in %.2fs", total_requests, time.time() - start_time)
        return grid  # type: ignore[return-value]


def check_health(base_url: str | None = None) -> bool:
    """Check OSRM service health by making a simple table request.

    Public OSRM endpoints may not have a /health endpoint, so we test
    connectivity by making a minimal table request with two coordinates.
    """
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    try:
        test_coords = "17.7833,46.8167;17.8333,46.8500"
        url = f"{base.rstrip('/')}/table/v1/{settings.osrm_profile}/{test_coords}"
        response = httpx.get(url, params={"annotations": "duration"}, timeout=5.0)
        response.raise_for_status()
        data = response.json()
        return "durations" in data and isinstance(data.get("durations"), list)
    except (httpx.HTTPError, ValueError):
        return False
