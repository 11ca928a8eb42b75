"""Concurrent address resolution for optimization requests."""

from __future__ import annotations

import logging
import re
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from ...config import settings
from ...models.domain import Coordinate, GeoPoint
from .errors import ResolutionError

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
# Upper bound on how long the batch waits before re-checking cancellation.
POLL_INTERVAL_SECONDS = 0.05


class GeocodingProvider(Protocol):
    def geocode(self, address: str) -> Coordinate:
        ...


def normalize_address(address: str) -> str:
    return _WHITESPACE.sub(" ", address.strip()).casefold()


class GeocodeCache:
    """Read-through store of successful resolutions keyed by normalized address."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, Coordinate] = {}

    def get(self, address: str) -> Coordinate | None:
        with self._lock:
            return self._entries.get(normalize_address(address))

    def put(self, address: str, coordinate: Coordinate) -> None:
        with self._lock:
            self._entries.setdefault(normalize_address(address), coordinate)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass(slots=True)
class ResolutionBatch:
    resolved: dict[str, Coordinate] = field(default_factory=dict)
    failures: dict[str, ResolutionError] = field(default_factory=dict)
    cancelled: bool = False


def is_interrupted(cancel_event: threading.Event | None, deadline: float | None) -> bool:
    if cancel_event is not None and cancel_event.is_set():
        return True
    return deadline is not None and time.monotonic() >= deadline


def _wait_timeout(cancel_event: threading.Event | None, deadline: float | None) -> float | None:
    if cancel_event is None and deadline is None:
        return None
    if deadline is None:
        return POLL_INTERVAL_SECONDS
    return max(0.0, min(POLL_INTERVAL_SECONDS, deadline - time.monotonic()))


class GeoPointResolver:
    """Turns addresses into coordinates; one provider call per address, no retries."""

    def __init__(
        self,
        provider: GeocodingProvider,
        *,
        cache: GeocodeCache | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.max_concurrency = max_concurrency or settings.geocoding_max_concurrency

    def resolve(self, address: str) -> Coordinate:
        if self.cache is not None:
            cached = self.cache.get(address)
            if cached is not None:
                return cached
        coordinate = self.provider.geocode(address)
        if self.cache is not None:
            self.cache.put(address, coordinate)
        return coordinate

    def _resolve_outcome(self, address: str) -> Coordinate | ResolutionError:
        try:
            return self.resolve(address)
        except ResolutionError as exc:
            return exc
        except Exception as exc:
            logger.warning("Unexpected geocoding failure for '%s': %s", address, exc)
            return ResolutionError(address, "provider_error", str(exc))

    def resolve_batch(
        self,
        points: Sequence[GeoPoint],
        *,
        cancel_event: threading.Event | None = None,
        deadline: float | None = None,
    ) -> ResolutionBatch:
        """Resolve every point lacking a coordinate, concurrently.

        Points that already carry a coordinate pass straight through. A failed
        address never cancels its siblings. When ``cancel_event`` is set or the
        monotonic ``deadline`` passes before all calls finish, the remaining
        calls are abandoned and the batch is flagged ``cancelled``.
        """
        batch = ResolutionBatch()
        pending: list[GeoPoint] = []
        for point in points:
            if point.coordinate is not None:
                batch.resolved[point.id] = point.coordinate
            else:
                pending.append(point)

        if not pending:
            return batch
        if is_interrupted(cancel_event, deadline):
            batch.cancelled = True
            return batch

        logger.info(
            "Resolving %d addresses (max %d concurrent)",
            len(pending),
            min(self.max_concurrency, len(pending)),
        )
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_concurrency, len(pending)),
            thread_name_prefix="geocode",
        )
        future_to_point = {
            executor.submit(self._resolve_outcome, point.address): point for point in pending
        }
        not_done = set(future_to_point)
        try:
            while not_done:
                if is_interrupted(cancel_event, deadline):
                    batch.cancelled = True
                    break
                done, not_done = wait(
                    not_done,
                    timeout=_wait_timeout(cancel_event, deadline),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    point = future_to_point[future]
                    outcome = future.result()
                    if isinstance(outcome, ResolutionError):
                        logger.warning("Failed to geocode %s (%s): %s", point.id, point.address, outcome.message)
                        batch.failures[point.id] = outcome
                    else:
                        point.coordinate = outcome
                        batch.resolved[point.id] = outcome
        finally:
            executor.shutdown(wait=not batch.cancelled, cancel_futures=batch.cancelled)

        if batch.cancelled:
            logger.warning("Address resolution interrupted with %d calls outstanding", len(not_done))
        else:
            logger.info(
                "Resolved %d/%d addresses (%d failed)",
                len(batch.resolved),
                len(points),
                len(batch.failures),
            )
        return batch
