"""API route handlers for land matching.

POST   /api/v1/land-matching                       — cache-first plot search
GET    /api/v1/land-matching/cache-stats           — cache diagnostics
POST   /api/v1/land-matching/warm                  — warm the cache for an area
DELETE /api/v1/land-matching/cache/{land_number}   — operator invalidation
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from plotmatch.api.schemas import (
    CacheStatsResponse,
    ErrorResponse,
    InvalidateResponse,
    LandMatchResponse,
    SearchRequest,
    WarmRequest,
    WarmResponse,
)
from plotmatch.core.errors import CacheIOError, SourceUnavailable
from plotmatch.core.types import GeoPoint
from plotmatch.pipeline.lookup import LandMatchingService, result_to_response
from plotmatch.retrieval.normalize import normalize_area, normalize_land_number

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/land-matching", tags=["land-matching"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def get_service(request: Request) -> LandMatchingService:
    """The process-wide service built during app startup."""
    return request.app.state.land_matching


@router.post(
    "",
    response_model=LandMatchResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request body"},
        500: {"model": ErrorResponse, "description": "Unexpected failure"},
    },
)
async def search_plots(body: SearchRequest, service: LandMatchingService = Depends(get_service)):
    """Find plots around a point, merging both providers."""
    center = GeoPoint(body.latitude, body.longitude)
    logger.info("Search lat=%s lng=%s r=%sm", body.latitude, body.longitude, body.radius_meters)
    try:
        result = await service.search(center, body.radius_meters)
    except Exception:
        logger.exception("Land matching failed")
        return _error(500, "Internal error")
    return result_to_response(result)


@router.get(
    "/cache-stats",
    response_model=CacheStatsResponse,
    responses={503: {"model": ErrorResponse, "description": "Cache store unavailable"}},
)
async def cache_stats(service: LandMatchingService = Depends(get_service)):
    try:
        stats = await service.cache.get_stats()
    except CacheIOError as e:
        logger.warning("Cache stats unavailable: %s", e)
        return _error(503, "Cache store unavailable")
    return {"success": True, **asdict(stats)}


@router.post(
    "/warm",
    response_model=WarmResponse,
    responses={502: {"model": ErrorResponse, "description": "Live sources unavailable"}},
)
async def warm_area(body: WarmRequest, service: LandMatchingService = Depends(get_service)):
    """Populate the cache for an area. A warm inside the cooldown caches 0 plots."""
    center = GeoPoint(body.latitude, body.longitude)
    try:
        cached = await service.warm(body.area, center, body.radius_meters)
    except SourceUnavailable as e:
        logger.warning("Warming failed: %s", e, extra={"area": body.area})
        return _error(502, str(e))
    return WarmResponse(area=normalize_area(body.area), plots_cached=cached)


@router.delete("/cache/{land_number}", response_model=InvalidateResponse)
async def invalidate_plot(land_number: str, service: LandMatchingService = Depends(get_service)):
    """Drop a plot from memory and flag its durable row for revalidation."""
    await service.cache.invalidate(land_number)
    return InvalidateResponse(land_number=normalize_land_number(land_number))
