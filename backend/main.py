"""FastAPI application for geo-grid local rank audits."""

import logging

from fastapi import FastAPI, HTTPException, Header, Depends
from fastapi.middleware.cors import CORSMiddleware

import config
from audit import run_geogrid_audit
from grid import GridConfig, generate_grid_from_config
from locations import resolve_location_code
from models import (
    AuditRequest,
    AuditResponse,
    BusinessRankingRequest,
    BusinessRankingResponse,
    CredentialsResponse,
    GeoPointModel,
    GridRequest,
    GridResponse,
    GridResultModel,
    MetricsModel,
)
from rank_client import RankingError, RankingTaskClient, RankQuery

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="GeoGrid Rank Engine", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Admin auth for provider-backed endpoints ----------

async def verify_admin(x_api_key: str = Header(default="")):
    """Protect billable endpoints with an API key. No key configured = allow (local dev)."""
    admin_key = config.ADMIN_API_KEY
    if not admin_key:
        return
    if x_api_key != admin_key:
        raise HTTPException(403, "Invalid or missing API key")


def get_client() -> RankingTaskClient:
    try:
        return RankingTaskClient()
    except config.ConfigError as exc:
        raise HTTPException(503, str(exc))


def _grid_config(req: GridRequest) -> GridConfig:
    return GridConfig(req.center_lat, req.center_lng, req.radius_km, req.grid_size)


# ---------- Health check ----------

@app.get("/health")
async def health():
    return {"status": "ok"}


# ---------- Grid ----------

@app.post("/grid", response_model=GridResponse)
async def generate_grid_endpoint(req: GridRequest):
    points = generate_grid_from_config(_grid_config(req))
    return GridResponse(
        count=len(points),
        points=[GeoPointModel(lat=p.lat, lng=p.lng) for p in points],
    )


# ---------- Rankings ----------

@app.post("/audit", response_model=AuditResponse, dependencies=[Depends(verify_admin)])
async def audit_endpoint(req: AuditRequest):
    async with get_client() as client:
        report = await run_geogrid_audit(
            _grid_config(req),
            req.keyword,
            req.business_name,
            client=client,
            mode=req.mode,
            fallback_location=req.fallback_location,
        )
    m = report.metrics
    return AuditResponse(
        keyword=report.keyword,
        business_name=report.business_name,
        mode=report.mode,
        simulated=report.simulated,
        seed_rank=report.seed_rank,
        seed_source=report.seed_source,
        grid_data=[
            GridResultModel(id=i, lat=r.point.lat, lng=r.point.lng, rank=r.rank)
            for i, r in enumerate(report.results, start=1)
        ],
        metrics=MetricsModel(afpr=m.afpr, tgrm=m.tgrm, tss=m.tss, found=m.found, total=m.total),
    )


@app.post("/business-ranking", response_model=BusinessRankingResponse, dependencies=[Depends(verify_admin)])
async def business_ranking_endpoint(req: BusinessRankingRequest):
    query = RankQuery(req.keyword, req.location, req.business_name)
    async with get_client() as client:
        try:
            rank = await client.query_rank(query)
        except RankingError as exc:
            raise HTTPException(502, f"{exc.kind.value}: {exc.message}")
    return BusinessRankingResponse(
        keyword=req.keyword,
        business_name=req.business_name,
        location=req.location,
        location_code=resolve_location_code(req.location),
        rank=rank,
        found=rank > 0,
    )


@app.post("/credentials/test", response_model=CredentialsResponse, dependencies=[Depends(verify_admin)])
async def credentials_test_endpoint():
    async with get_client() as client:
        ok, message = await client.check_credentials()
    return CredentialsResponse(success=ok, message=message)


# ---------- Config (read-only) ----------

@app.get("/config")
async def get_config():
    return {
        "base_url": config.DATAFORSEO_BASE_URL,
        "default_grid_size": config.DEFAULT_GRID_SIZE,
        "default_radius_km": config.DEFAULT_RADIUS_KM,
        "result_depth": config.RESULT_DEPTH,
        "poll_delay_s": config.POLL_DELAY_S,
        "poll_max_attempts": config.POLL_MAX_ATTEMPTS,
        "max_rank_variation": config.MAX_RANK_VARIATION,
        "credentials_configured": bool(config.DATAFORSEO_LOGIN and config.DATAFORSEO_PASSWORD),
    }
