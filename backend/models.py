"""Pydantic models for API requests and responses."""

from typing import Literal

from pydantic import BaseModel, Field

import config


class GridRequest(BaseModel):
    center_lat: float = Field(..., ge=-90, le=90)
    center_lng: float = Field(..., ge=-180, le=180)
    radius_km: float = Field(config.DEFAULT_RADIUS_KM, gt=0)
    grid_size: int = Field(config.DEFAULT_GRID_SIZE, ge=1, le=15)


class GeoPointModel(BaseModel):
    lat: float
    lng: float


class GridResponse(BaseModel):
    count: int
    points: list[GeoPointModel]


class AuditRequest(GridRequest):
    keyword: str = Field(..., min_length=1)
    business_name: str = Field(..., min_length=1)
    mode: Literal["simulated", "measured"] = "simulated"
    fallback_location: str | None = None


class GridResultModel(BaseModel):
    id: int
    lat: float
    lng: float
    rank: int


class MetricsModel(BaseModel):
    afpr: float
    tgrm: float
    tss: float
    found: int
    total: int


class AuditResponse(BaseModel):
    keyword: str
    business_name: str
    mode: str
    simulated: bool
    seed_rank: int
    seed_source: str
    grid_data: list[GridResultModel]
    metrics: MetricsModel


class BusinessRankingRequest(BaseModel):
    keyword: str = Field(..., min_length=1)
    business_name: str = Field(..., min_length=1)
    location: str = "United States"


class BusinessRankingResponse(BaseModel):
    keyword: str
    business_name: str
    location: str
    location_code: int
    rank: int
    found: bool


class CredentialsResponse(BaseModel):
    success: bool
    message: str
