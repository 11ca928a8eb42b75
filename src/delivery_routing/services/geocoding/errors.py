"""Per-address resolution failures."""

from __future__ import annotations


class ResolutionError(Exception):
    """An address could not be turned into a coordinate."""

    def __init__(self, address: str, reason: str, message: str | None = None) -> None:
        self.address = address
        self.reason = reason
        self.message = message or reason
        super().__init__(f"{address!r}: {self.message}")
