from .errors import ResolutionError
from .resolver import (
    GeocodeCache,
    GeocodingProvider,
    GeoPointResolver,
    ResolutionBatch,
    is_interrupted,
    normalize_address,
)

__all__ = [
    "GeoPointResolver",
    "GeocodeCache",
    "GeocodingProvider",
    "ResolutionBatch",
    "ResolutionError",
    "is_interrupted",
    "normalize_address",
]
