"""Geo-grid audit: generate the grid, measure the seed rank, fill the grid.

Two modes:
- simulated (default): one real measurement at the center, the rest estimated
  by the simulator.
- measured: every grid point is queried by coordinate. Costs one task per point.
"""

import asyncio
import logging
import random
from dataclasses import dataclass

import config
from grid import SAME_POINT_KM, GeoPoint, GridConfig, distance_km, generate_grid_from_config
from locations import nearest_city
from matcher import NOT_FOUND
from rank_client import RankingError, RankingTaskClient, RankQuery
from simulator import GridMetrics, GridResult, compute_metrics, simulate

logger = logging.getLogger(__name__)

MODE_SIMULATED = "simulated"
MODE_MEASURED = "measured"
MODES = (MODE_SIMULATED, MODE_MEASURED)

SEED_CENTER = "center"
SEED_FALLBACK = "fallback"
SEED_NONE = "none"


@dataclass
class AuditReport:
    grid: GridConfig
    keyword: str
    business_name: str
    mode: str
    results: list[GridResult]
    metrics: GridMetrics
    seed_rank: int
    seed_source: str

    @property
    def simulated(self) -> bool:
        return self.mode == MODE_SIMULATED


async def _attempt(client: RankingTaskClient, query: RankQuery, timeout: float | None) -> int:
    """One rank lookup; provider failures and timeouts collapse to -1."""
    try:
        return await asyncio.wait_for(client.query_rank(query), timeout)
    except RankingError as exc:
        logger.warning("Rank lookup failed (%s): %s", exc.kind.value, exc.message)
    except asyncio.TimeoutError:
        logger.warning("Rank lookup timed out after %ss", timeout)
    return NOT_FOUND


async def measure_seed(
    client: RankingTaskClient,
    keyword: str,
    business_name: str,
    center: GeoPoint,
    fallback_location: str | None = None,
    timeout: float | None = config.AUDIT_TIMEOUT_S,
) -> tuple[int, str]:
    """Measure the center rank, retrying once by named location.

    Returns (rank, source) where source is "center", "fallback" or "none".
    """
    location = fallback_location or config.FALLBACK_LOCATION or nearest_city(center)

    rank = await _attempt(client, RankQuery(keyword, location, business_name, center), timeout)
    if rank > 0:
        return rank, SEED_CENTER

    logger.warning("%r not found at center, falling back to %r", business_name, location)
    rank = await _attempt(client, RankQuery(keyword, location, business_name), timeout)
    if rank > 0:
        return rank, SEED_FALLBACK
    return NOT_FOUND, SEED_NONE


async def measure_grid(
    client: RankingTaskClient,
    points: list[GeoPoint],
    keyword: str,
    business_name: str,
    location_name: str,
    timeout: float | None = config.AUDIT_TIMEOUT_S,
) -> list[GridResult]:
    """Query every point by coordinate; the client's semaphore bounds fan-out."""
    tasks = [
        _attempt(client, RankQuery(keyword, location_name, business_name, p), timeout)
        for p in points
    ]
    ranks = await asyncio.gather(*tasks)
    return [GridResult(p, r) for p, r in zip(points, ranks)]


async def run_geogrid_audit(
    grid_config: GridConfig,
    keyword: str,
    business_name: str,
    *,
    client: RankingTaskClient | None = None,
    mode: str = MODE_SIMULATED,
    fallback_location: str | None = None,
    rng: random.Random | None = None,
    timeout: float | None = config.AUDIT_TIMEOUT_S,
) -> AuditReport:
    """Rank business_name for keyword at every point of the grid.

    Always returns one result per generated point; points without data carry
    rank -1.
    """
    if mode not in MODES:
        raise ValueError(f"Unknown audit mode: {mode}")
    if not keyword or not keyword.strip():
        raise ValueError("Keyword must be provided.")

    points = generate_grid_from_config(grid_config)
    center = grid_config.center
    logger.info(
        "Audit %r for %r: %d grid points around (%.5f, %.5f), mode=%s",
        keyword, business_name, len(points), center.lat, center.lng, mode,
    )

    owns_client = client is None
    client = client or RankingTaskClient()
    try:
        if mode == MODE_MEASURED:
            location = fallback_location or config.FALLBACK_LOCATION or nearest_city(center)
            results = await measure_grid(client, points, keyword, business_name, location, timeout)
            seed_rank = next((r.rank for r in results if distance_km(r.point, center) <= SAME_POINT_KM), NOT_FOUND)
            seed_source = SEED_CENTER if seed_rank > 0 else SEED_NONE
        else:
            seed_rank, seed_source = await measure_seed(
                client, keyword, business_name, center, fallback_location, timeout
            )
            if seed_rank < 0:
                logger.info("%r not found, returning empty grid", business_name)
            results = simulate(points, center, seed_rank, grid_config.radius_km, rng)
    finally:
        if owns_client:
            await client.aclose()

    return AuditReport(
        grid=grid_config,
        keyword=keyword,
        business_name=business_name,
        mode=mode,
        results=results,
        metrics=compute_metrics(results),
        seed_rank=seed_rank,
        seed_source=seed_source,
    )
