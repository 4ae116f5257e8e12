"""Pydantic request/response models for the plotmatch API.

These are the API contract, decoupled from the internal domain dataclasses.
Route handlers build plain dicts via pipeline.lookup and validate them here.
"""

from pydantic import BaseModel, ConfigDict, Field


class SearchRequest(BaseModel):
    """Request body for POST /api/v1/land-matching."""

    latitude: float = Field(..., strict=True, ge=-90, le=90, examples=[25.0657])
    longitude: float = Field(..., strict=True, ge=-180, le=180, examples=[55.1713])
    radius_meters: float = Field(1000, strict=True, ge=1, le=50_000, description="Search radius in meters")


class WarmRequest(BaseModel):
    """Request body for POST /api/v1/land-matching/warm."""

    area: str = Field(..., min_length=1, max_length=200, examples=["Majan"])
    latitude: float = Field(..., strict=True, ge=-90, le=90)
    longitude: float = Field(..., strict=True, ge=-180, le=180)
    radius_meters: float = Field(5000, strict=True, ge=1, le=50_000)


class PlotResponse(BaseModel):
    """One plot. Provider attributes (area_sqm, main_landuse, ...) pass through as extras."""

    model_config = ConfigDict(extra="allow")

    plot_id: str
    land_number: str
    area: str
    latitude: float
    longitude: float
    distance_from_center_m: float
    land_status: str | None = None
    land_status_source: str | None = None
    data_source_master: str
    is_fallback: bool
    confidence_score: float
    last_certificate_no: str | None = None
    property_type: str | None = None


class CenterResponse(BaseModel):
    latitude: float
    longitude: float


class SearchParametersResponse(BaseModel):
    radius_meters: float


class LandMatchData(BaseModel):
    plots: list[PlotResponse]
    center: CenterResponse
    search_parameters: SearchParametersResponse


class ApiPerformance(BaseModel):
    gis_dda_ms: int
    property_status_ms: int
    total_ms: int


class DataSources(BaseModel):
    gis_dda_available: bool
    gis_dda_error: str | None = None
    property_status_available: bool
    property_status_error: str | None = None
    fallback_used: bool
    freehold_enriched: bool


class LandMatchMetadata(BaseModel):
    source: str
    total_count: int
    gis_dda_count: int
    property_status_count: int
    fallback_count: int
    freehold_enriched_count: int
    duplicates_dropped: int = 0
    search_radius_m: float
    execution_time_ms: int
    api_performance: ApiPerformance | None = None
    data_sources: DataSources | None = None


class LandMatchResponse(BaseModel):
    success: bool = True
    data: LandMatchData
    metadata: LandMatchMetadata


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class WarmResponse(BaseModel):
    success: bool = True
    area: str
    plots_cached: int


class InvalidateResponse(BaseModel):
    success: bool = True
    land_number: str


class CacheStatsResponse(BaseModel):
    success: bool = True
    total_cached: int
    fresh_count: int
    stale_count: int
    needs_revalidation_count: int
    avg_age_hours: float
    by_area: dict[str, int]
    by_source: dict[str, int]
    memory_entries: int
    memory_capacity: int
