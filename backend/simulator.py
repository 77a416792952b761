"""Simulator: extrapolate one measured rank across a geo-grid.

Measuring every point costs a full task + poll cycle per point, so by default
only the center is measured and the rest of the grid is estimated:
rank degrades linearly with distance (up to MAX_RANK_VARIATION positions at
the edge) with a +/-1 jitter so iso-rank contours are not perfect circles.
The output is an approximation and is labelled as such by the audit.
"""

import logging
import math
import random
from dataclasses import dataclass

import config
from grid import SAME_POINT_KM, GeoPoint, distance_km
from matcher import NOT_FOUND

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridResult:
    point: GeoPoint
    rank: int


def rank_variation(
    distance: float,
    radius_km: float,
    center_rank: int,
    rng: random.Random,
    max_variation: int = config.MAX_RANK_VARIATION,
) -> int:
    if center_rank < 0:
        return NOT_FOUND
    normalized = min(distance / radius_km, 1.0)
    variation = math.floor(normalized * max_variation)
    jitter = rng.randint(-1, 1)
    return max(1, center_rank + variation + jitter)


def simulate(
    points: list[GeoPoint],
    center: GeoPoint,
    center_rank: int,
    radius_km: float,
    rng: random.Random | None = None,
) -> list[GridResult]:
    """Assign an estimated rank to every grid point.

    A failed seed (center_rank < 0) yields -1 everywhere; nothing is
    fabricated from a missing measurement.
    """
    if radius_km <= 0:
        raise ValueError("Radius must be > 0")
    if center_rank < 0:
        return [GridResult(p, NOT_FOUND) for p in points]

    rng = rng or random.Random()
    results: list[GridResult] = []
    for p in points:
        d = distance_km(center, p)
        if d <= SAME_POINT_KM:
            rank = center_rank
        else:
            rank = rank_variation(d, radius_km, center_rank, rng)
        results.append(GridResult(p, rank))

    logger.info("Simulated %d grid points from center rank %d", len(results), center_rank)
    return results


@dataclass(frozen=True)
class GridMetrics:
    afpr: float  # average first-page rank (ranks <= 10)
    tgrm: float  # total grid rank mean
    tss: float   # top spot share, percent of ranks <= 3
    found: int
    total: int


def compute_metrics(results: list[GridResult]) -> GridMetrics:
    valid = [r.rank for r in results if r.rank > 0]
    first_page = [r for r in valid if r <= 10]

    def mean(values: list[int]) -> float:
        return round(sum(values) / len(values), 2) if values else 0.0

    tss = round(100.0 * sum(1 for r in valid if r <= 3) / len(valid), 2) if valid else 0.0
    return GridMetrics(
        afpr=mean(first_page),
        tgrm=mean(valid),
        tss=tss,
        found=len(valid),
        total=len(results),
    )
