"""Location name -> ranking-provider location code resolution."""

import logging
from collections.abc import Mapping
from types import MappingProxyType

import config
from grid import GeoPoint, distance_km

logger = logging.getLogger(__name__)

DEFAULT_LOCATION_NAME = "United States"

# DataForSEO location codes for common markets
DEFAULT_LOCATION_CODES: Mapping[str, int] = MappingProxyType({
    "United States": 2840,
    "New York": 1022300,
    "Los Angeles": 1022462,
    "Chicago": 1016367,
    "San Francisco": 1023191,
    "Miami": 1020275,
    "Dallas": 1020584,
    "Houston": 1020432,
    "Atlanta": 1015212,
    "Boston": 1019026,
    "Seattle": 1024497,
    "Denver": 1019634,
    "Phoenix": 1022135,
    "Las Vegas": 1021339,
    "UK": 2826,
    "London": 1006894,
    "Canada": 2124,
    "Toronto": 1010223,
    "Australia": 2036,
    "Sydney": 1007402,
})

# City centers used to pick a named fallback near a grid center
KNOWN_CITIES: Mapping[str, GeoPoint] = MappingProxyType({
    "New York": GeoPoint(40.7128, -74.0060),
    "Los Angeles": GeoPoint(34.0522, -118.2437),
    "Chicago": GeoPoint(41.8781, -87.6298),
    "San Francisco": GeoPoint(37.7749, -122.4194),
    "Miami": GeoPoint(25.7617, -80.1918),
    "Dallas": GeoPoint(32.7767, -96.7970),
    "Houston": GeoPoint(29.7604, -95.3698),
    "Atlanta": GeoPoint(33.7490, -84.3880),
    "Boston": GeoPoint(42.3601, -71.0589),
    "Seattle": GeoPoint(47.6062, -122.3321),
    "Denver": GeoPoint(39.7392, -104.9903),
    "Phoenix": GeoPoint(33.4484, -112.0740),
    "Las Vegas": GeoPoint(36.1699, -115.1398),
    "London": GeoPoint(51.5074, -0.1278),
    "Toronto": GeoPoint(43.6532, -79.3832),
    "Sydney": GeoPoint(-33.8688, 151.2093),
})


class LocationResolver:
    """Resolve place names to provider location codes.

    Matching order: exact, case-insensitive exact, case-insensitive substring
    in either direction, then the default entry. The substring pass is coarse
    ("San Francisco Bay" resolves to "San Francisco") and callers must accept
    that imprecision.
    """

    def __init__(
        self,
        codes: Mapping[str, int] = DEFAULT_LOCATION_CODES,
        default_name: str = DEFAULT_LOCATION_NAME,
    ) -> None:
        self._codes = MappingProxyType(dict(codes))
        self._default = self._codes.get(default_name, config.DEFAULT_LOCATION_CODE)

    @property
    def default_code(self) -> int:
        return self._default

    def resolve(self, name: str) -> int:
        if name in self._codes:
            return self._codes[name]

        lowered = name.strip().lower()
        if not lowered:
            return self._default

        for key, code in self._codes.items():
            if key.lower() == lowered:
                return code

        for key, code in self._codes.items():
            k = key.lower()
            if k in lowered or lowered in k:
                logger.debug("Location %r resolved by partial match to %r", name, key)
                return code

        logger.debug("Location %r not in table, using default code %d", name, self._default)
        return self._default


def nearest_city(point: GeoPoint, cities: Mapping[str, GeoPoint] = KNOWN_CITIES) -> str:
    """Name of the known city closest to point (great-circle distance)."""
    if not cities:
        return DEFAULT_LOCATION_NAME
    return min(cities, key=lambda name: distance_km(point, cities[name]))


_default_resolver = LocationResolver()


def resolve_location_code(name: str) -> int:
    return _default_resolver.resolve(name)
