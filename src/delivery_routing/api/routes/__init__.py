"""API route registrations."""

from . import health, routes, vehicles

__all__ = ["health", "routes", "vehicles"]
