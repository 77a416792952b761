"""Grid generation: circular N x N sample grid around a center point."""

import math
from dataclasses import dataclass

import config

R = config.EARTH_RADIUS_KM

# Points closer than this (km) are treated as the same location
SAME_POINT_KM = 1e-6


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(frozen=True)
class GridConfig:
    center_lat: float
    center_lng: float
    radius_km: float
    grid_size: int

    @property
    def center(self) -> GeoPoint:
        return GeoPoint(self.center_lat, self.center_lng)


def haversine(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in kilometers between two lat/lng points (haversine formula)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return 2 * R * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    return haversine(a.lat, a.lng, b.lat, b.lng)


def destination_point(center: GeoPoint, distance: float, bearing: float) -> GeoPoint:
    """Project a point `distance` km from center along `bearing` (radians)."""
    lat = math.radians(center.lat)
    lng = math.radians(center.lng)
    delta = distance / R

    new_lat = math.asin(
        math.sin(lat) * math.cos(delta) + math.cos(lat) * math.sin(delta) * math.cos(bearing)
    )
    new_lng = lng + math.atan2(
        math.sin(bearing) * math.sin(delta) * math.cos(lat),
        math.cos(delta) - math.sin(lat) * math.sin(new_lat),
    )
    return GeoPoint(math.degrees(new_lat), math.degrees(new_lng))


def generate_grid(center: GeoPoint, radius_km: float, grid_size: int) -> list[GeoPoint]:
    """Generate up to grid_size**2 points covering the circle around center.

    Points of the square lattice that fall outside radius_km are dropped, so
    the corners of the square are never sampled. Ordering is i-major, then j.
    """
    if grid_size < 1:
        raise ValueError("Grid size must be >= 1")
    if radius_km <= 0:
        raise ValueError("Radius must be > 0")
    if grid_size == 1:
        return [center]

    points: list[GeoPoint] = []
    for i in range(grid_size):
        for j in range(grid_size):
            x = 2 * (i / (grid_size - 1)) - 1
            y = 2 * (j / (grid_size - 1)) - 1
            d = radius_km * math.sqrt(x * x + y * y)
            if d > radius_km:
                continue
            points.append(destination_point(center, d, math.atan2(y, x)))
    if not points:
        # grid_size 2 has only the four corners, all outside the circle
        return [center]
    return points


def generate_grid_from_config(cfg: GridConfig) -> list[GeoPoint]:
    return generate_grid(cfg.center, cfg.radius_km, cfg.grid_size)
