"""Land-matching lookup — cache-first search over both providers.

Flow:
  1. Durable radius cache. Served only when at least one row matched and
     every matched row is fresh.
  2. Otherwise both sources in parallel, then consolidation.
  3. Every consolidated plot is written through to the cache.

Source failures never fail a search; they surface in the response metadata.
"""

import logging
import time
from datetime import timedelta
from typing import Any

from plotmatch.cache.plot_cache import CachePolicy, PlotDataCache
from plotmatch.cache.warmer import DEFAULT_WARM_RADIUS_M, CacheWarmer
from plotmatch.config import settings
from plotmatch.core.errors import SourceUnavailable
from plotmatch.core.types import (
    RADIUS_TOLERANCE,
    GeoPoint,
    LandMatchResult,
    PlotRecord,
    VerificationSource,
)
from plotmatch.observability.tracing import start_span, trace
from plotmatch.pipeline.consolidate import consolidate
from plotmatch.pipeline.parallel import ParallelQueryEngine
from plotmatch.retrieval.gis import GisDdaClient
from plotmatch.retrieval.status import PropertyStatusClient
from plotmatch.storage.store import PlotCacheStore

logger = logging.getLogger(__name__)


class LandMatchingService:
    """One per process. Owns the cache, the query engine, and the warmer."""

    def __init__(self, cache: PlotDataCache, engine: ParallelQueryEngine, warmer: CacheWarmer | None = None) -> None:
        self.cache = cache
        self.engine = engine
        self.warmer = warmer or CacheWarmer(cache, cache.store)
        if self.warmer.source_fetcher is None:
            self.warmer.source_fetcher = self.fetch_live

    @trace(name="land_matching_search", span_type="CHAIN")
    async def search(self, center: GeoPoint, radius_m: float) -> LandMatchResult:
        start = time.monotonic()

        with start_span(name="cache_radius_lookup") as span:
            hits = await self.cache.search_by_radius(center, radius_m * RADIUS_TOLERANCE)
            cache_hit = bool(hits) and all(h.is_fresh for h in hits)
            span.set_outputs({"rows": len(hits), "hit": cache_hit})

        if cache_hit:
            plots = sorted(
                (h.entry.record for h in hits),
                key=lambda p: (p.distance_from_center_m, p.plot_id),
            )
            elapsed = int((time.monotonic() - start) * 1000)
            logger.info("Cache hit: %d plot(s)", len(plots), extra={"step": "cache", "duration_ms": elapsed})
            return LandMatchResult(
                plots=plots, center=center, radius_m=radius_m, source="cache", execution_time_ms=elapsed,
            )

        query = await self.engine.query(center, radius_m)
        consolidation = consolidate(query.authoritative.records, query.fallback.records, radius_m)

        # Write-through, one upsert at a time
        for plot in consolidation.plots:
            await self.cache.set_plot_data(plot, VerificationSource.USER_SEARCH)

        elapsed = int((time.monotonic() - start) * 1000)
        logger.info("Live search: %d plot(s)", consolidation.total_count,
                    extra={"step": "live", "duration_ms": elapsed})
        return LandMatchResult(
            plots=consolidation.plots,
            center=center,
            radius_m=radius_m,
            source="live",
            execution_time_ms=elapsed,
            consolidation=consolidation,
            query=query,
        )

    async def fetch_live(self, center: GeoPoint, radius_m: float) -> list[PlotRecord]:
        """Consolidated live plots without touching the cache. Used for warming.

        Raises:
            SourceUnavailable: both sources failed, so nothing can be warmed.
        """
        query = await self.engine.query(center, radius_m)
        if not query.authoritative.success and not query.fallback.success:
            raise SourceUnavailable(
                "all", f"{query.authoritative.error}; {query.fallback.error}",
            )
        return consolidate(query.authoritative.records, query.fallback.records, radius_m).plots

    async def warm(self, area: str, center: GeoPoint, radius_m: float = DEFAULT_WARM_RADIUS_M) -> int:
        return await self.warmer.warm_cache_for_area(area, center, radius_m)


def build_service() -> LandMatchingService:
    """Wire a service from settings."""
    store = PlotCacheStore()
    policy = CachePolicy(
        stale_grace=timedelta(hours=settings.stale_grace_hours),
        memory_entries=settings.memory_cache_entries,
    )
    cache = PlotDataCache(store, policy)
    engine = ParallelQueryEngine(
        GisDdaClient(),
        PropertyStatusClient(),
        authoritative_timeout_s=settings.gis_timeout_s,
        fallback_timeout_s=settings.status_timeout_s,
    )
    warmer = CacheWarmer(
        cache,
        store,
        cooldown=timedelta(hours=settings.warming_cooldown_hours),
        batch_size=settings.warming_batch_size,
        batch_delay_s=settings.warming_batch_delay_s,
    )
    return LandMatchingService(cache, engine, warmer)


# ---------------------------------------------------------------------------
# Response shaping
# ---------------------------------------------------------------------------

def plot_to_dict(plot: PlotRecord) -> dict[str, Any]:
    """Flat JSON view of a plot. Provider attributes sit beside the core fields."""
    data: dict[str, Any] = {
        "plot_id": plot.plot_id,
        "land_number": plot.land_number,
        "area": plot.area,
        "latitude": plot.latitude,
        "longitude": plot.longitude,
        "distance_from_center_m": plot.distance_from_center_m,
        "land_status": plot.land_status,
        "land_status_source": plot.land_status_source,
        "data_source_master": plot.source_kind.value,
        "is_fallback": plot.is_fallback,
        "confidence_score": plot.confidence_score,
        "last_certificate_no": plot.last_certificate_no,
        "property_type": plot.property_type,
    }
    if plot.geometry is not None:
        data["geometry"] = plot.geometry
    for key, value in plot.attributes.items():
        data.setdefault(key, value)
    return data


def result_to_response(result: LandMatchResult) -> dict[str, Any]:
    """Success envelope for a LandMatchResult."""
    plots = [plot_to_dict(p) for p in result.plots]
    metadata: dict[str, Any] = {"source": result.source}

    c = result.consolidation
    if c is not None and result.query is not None:
        auth, fb = result.query.authoritative, result.query.fallback
        metadata.update(
            total_count=c.total_count,
            gis_dda_count=c.gis_dda_count,
            property_status_count=c.property_status_count,
            fallback_count=c.fallback_count,
            freehold_enriched_count=c.freehold_enriched_count,
            duplicates_dropped=c.duplicates_dropped,
            search_radius_m=c.search_radius_m,
            execution_time_ms=result.execution_time_ms,
            api_performance={
                "gis_dda_ms": auth.elapsed_ms,
                "property_status_ms": fb.elapsed_ms,
                "total_ms": result.execution_time_ms,
            },
            data_sources={
                "gis_dda_available": auth.success,
                "gis_dda_error": auth.error,
                "property_status_available": fb.success,
                "property_status_error": fb.error,
                "fallback_used": c.fallback_count > 0,
                "freehold_enriched": c.freehold_enriched_count > 0,
            },
        )
    else:
        fallback_count = sum(1 for p in result.plots if p.is_fallback)
        metadata.update(
            total_count=len(result.plots),
            gis_dda_count=len(result.plots) - fallback_count,
            property_status_count=fallback_count,
            fallback_count=fallback_count,
            freehold_enriched_count=sum(1 for p in result.plots if p.land_status and not p.is_fallback),
            duplicates_dropped=0,
            search_radius_m=result.radius_m,
            execution_time_ms=result.execution_time_ms,
            api_performance=None,
            data_sources=None,
        )

    return {
        "success": True,
        "data": {
            "plots": plots,
            "center": {"latitude": result.center.latitude, "longitude": result.center.longitude},
            "search_parameters": {"radius_meters": result.radius_m},
        },
        "metadata": metadata,
    }
