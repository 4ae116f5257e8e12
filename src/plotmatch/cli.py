"""plotmatch CLI — search, warm, and cache statistics commands."""

import asyncio
import sys

from plotmatch.config import settings
from plotmatch.core.types import GeoPoint
from plotmatch.observability.logging import bind_correlation_id, setup_logging


def _configure_logging() -> None:
    setup_logging(json_format=False, level=settings.log_level)


def _execute(run) -> None:
    """Run one command body under its own correlation id."""
    with bind_correlation_id():
        asyncio.run(run())


def _parse_point(args: list[str]) -> tuple[GeoPoint, float | None]:
    """LAT LNG [RADIUS] → (point, radius or None)."""
    lat, lng = float(args[0]), float(args[1])
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise ValueError(f"coordinates out of range: {lat}, {lng}")
    radius = float(args[2]) if len(args) > 2 else None
    if radius is not None and not 1 <= radius <= 50_000:
        raise ValueError(f"radius must be between 1 and 50000 meters, got {radius}")
    return GeoPoint(lat, lng), radius


def main() -> None:
    """Search plots around a point: plotmatch <lat> <lng> [radius_m]"""
    _configure_logging()

    if len(sys.argv) < 3:
        print("Usage: plotmatch <lat> <lng> [radius_m]")
        print("  Example: plotmatch 25.0657 55.1713 500")
        sys.exit(1)

    try:
        center, radius = _parse_point(sys.argv[1:])
    except ValueError as e:
        print(f"Invalid arguments: {e}")
        sys.exit(1)

    async def _run():
        from plotmatch.pipeline.lookup import build_service
        from plotmatch.storage.db import dispose_engine

        service = build_service()
        try:
            result = await service.search(center, radius or settings.default_radius_m)
            await service.cache.wait_pending()
        finally:
            await dispose_engine()

        print(f"\n{len(result.plots)} plot(s) from {result.source} in {result.execution_time_ms}ms:\n")
        for p in result.plots:
            status = p.land_status or "-"
            print(f"  {p.land_number:<20} {p.area:<35} {p.distance_from_center_m:>6.0f}m  "
                  f"{p.source_kind.value:<22} conf={p.confidence_score:.2f}  status={status}")
        if result.query is not None:
            for src in (result.query.authoritative, result.query.fallback):
                if not src.success:
                    print(f"\n  ! {src.source.value} unavailable: {src.error}")

    _execute(_run)


def warm_main() -> None:
    """Warm the cache for an area: plotmatch-warm <area> <lat> <lng> [radius_m]"""
    _configure_logging()

    if len(sys.argv) < 4:
        print("Usage: plotmatch-warm <area> <lat> <lng> [radius_m]")
        print('  Example: plotmatch-warm "Majan" 25.0880 55.3150 5000')
        sys.exit(1)

    area = sys.argv[1]
    try:
        center, radius = _parse_point(sys.argv[2:])
    except ValueError as e:
        print(f"Invalid arguments: {e}")
        sys.exit(1)

    async def _run():
        from plotmatch.cache.warmer import DEFAULT_WARM_RADIUS_M
        from plotmatch.core.errors import SourceUnavailable
        from plotmatch.pipeline.lookup import build_service
        from plotmatch.storage.db import dispose_engine, init_db

        await init_db()
        service = build_service()
        try:
            count = await service.warm(area, center, radius or DEFAULT_WARM_RADIUS_M)
        except SourceUnavailable as e:
            print(f"Warming failed: {e}")
            sys.exit(2)
        finally:
            await dispose_engine()
        print(f"\nCached {count} plot(s) for {area}")
        if count == 0:
            print("(Nothing fetched — area warmed within the cooldown window or no plots found)")

    _execute(_run)


def stats_main() -> None:
    """Print cache statistics: plotmatch-stats"""
    _configure_logging()

    async def _run():
        from plotmatch.core.errors import CacheIOError
        from plotmatch.pipeline.lookup import build_service
        from plotmatch.storage.db import dispose_engine

        service = build_service()
        try:
            stats = await service.cache.get_stats()
        except CacheIOError as e:
            print(f"Cache statistics unavailable: {e}")
            sys.exit(2)
        finally:
            await dispose_engine()

        print(f"\nCached plots: {stats.total_cached}")
        print(f"  fresh:              {stats.fresh_count}")
        print(f"  stale:              {stats.stale_count}")
        print(f"  needs revalidation: {stats.needs_revalidation_count}")
        print(f"  avg age:            {stats.avg_age_hours}h")
        print("\nBy source:")
        for source, n in sorted(stats.by_source.items()):
            print(f"  {source:<25} {n}")
        print("\nBy area:")
        for area, n in stats.by_area.items():
            print(f"  {area:<35} {n}")

    _execute(_run)
