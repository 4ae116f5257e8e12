"""Durable tier of the plot cache — Postgres via SQLAlchemy async.

Rows are keyed by normalized land number and upserted (last write wins);
that upsert is the only cross-instance consistency mechanism. Every storage
failure surfaces as CacheIOError so callers can fail open.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, extract, func, select, text, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from plotmatch.core.errors import CacheIOError
from plotmatch.core.types import (
    CachedPlotHit,
    CacheEntry,
    CacheStats,
    GeoPoint,
    PlotRecord,
    SourceKind,
    VerificationSource,
)
from plotmatch.retrieval.normalize import generate_plot_id, normalize_land_number
from plotmatch.storage.db import SessionFactory, get_session
from plotmatch.storage.models import CacheWarmingLog, PlotCacheRow

logger = logging.getLogger(__name__)

RADIUS_SEARCH_QUERY = text(
    "SELECT * FROM search_cached_plots_by_radius(:center_lat, :center_lng, :radius_m, :max_age_hours)"
)

STATS_AREA_LIMIT = 50


def entry_to_row(entry: CacheEntry) -> dict:
    """Column values for one cache entry. Geometry is never persisted."""
    rec = entry.record
    return {
        "land_number": normalize_land_number(rec.land_number),
        "area": rec.area,
        "latitude": rec.latitude,
        "longitude": rec.longitude,
        "land_status": rec.land_status,
        "property_type": rec.property_type,
        "last_certificate_no": rec.last_certificate_no,
        "data_source": rec.source_kind.value,
        "cache_version": entry.cache_version,
        "last_verified": entry.last_verified,
        "verification_source": entry.verification_source.value,
        "needs_revalidation": entry.needs_revalidation,
        "raw_data": {
            "plot_id": rec.plot_id,
            "land_number": rec.land_number,
            "confidence_score": rec.confidence_score,
            "attributes": rec.attributes,
        },
    }


def _orm_to_dict(row: PlotCacheRow) -> dict:
    return {c.name: getattr(row, c.name) for c in PlotCacheRow.__table__.columns}


def row_to_entry(row: dict, distance_m: float = 0.0) -> CacheEntry:
    """Rebuild a CacheEntry from a plot_data_cache row mapping."""
    get = row.get
    source = SourceKind(get("data_source"))
    raw = get("raw_data") or {}
    land_number = raw.get("land_number") or get("land_number")
    land_status = get("land_status")
    record = PlotRecord(
        plot_id=raw.get("plot_id") or generate_plot_id(source, land_number),
        land_number=land_number,
        area=get("area"),
        latitude=float(get("latitude")),
        longitude=float(get("longitude")),
        distance_from_center_m=float(distance_m),
        source_kind=source,
        confidence_score=float(raw.get("confidence_score", source.confidence)),
        land_status=land_status,
        land_status_source=SourceKind.FALLBACK.value if land_status else None,
        last_certificate_no=get("last_certificate_no"),
        property_type=get("property_type"),
        attributes=dict(raw.get("attributes") or {}),
    )
    return CacheEntry(
        record=record,
        last_verified=get("last_verified"),
        cache_version=int(get("cache_version") or 1),
        needs_revalidation=bool(get("needs_revalidation")),
        verification_source=VerificationSource(get("verification_source") or "user_search"),
    )


class PlotCacheStore:
    """Postgres-backed plot cache and warming log."""

    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory or get_session

    @asynccontextmanager
    async def _session(self, operation: str):
        session = await self._session_factory()
        try:
            yield session
        except (SQLAlchemyError, OSError) as e:
            raise CacheIOError(f"{operation} failed: {e}") from e
        finally:
            await session.close()

    # ------------------------------------------------------------------
    # Plot rows
    # ------------------------------------------------------------------

    async def get(self, land_number: str) -> CacheEntry | None:
        key = normalize_land_number(land_number)
        async with self._session("cache read") as session:
            result = await session.execute(select(PlotCacheRow).where(PlotCacheRow.land_number == key))
            row = result.scalar_one_or_none()
        return row_to_entry(_orm_to_dict(row)) if row is not None else None

    async def upsert(self, entry: CacheEntry) -> int:
        """Insert or replace a row; returns the stored cache_version.

        On conflict the stored version is incremented rather than taken
        from the caller, so versions stay monotonic across instances.
        """
        values = entry_to_row(entry)
        stmt = insert(PlotCacheRow).values(**values)
        updates = {k: stmt.excluded[k] for k in values if k not in ("land_number", "cache_version")}
        updates["cache_version"] = PlotCacheRow.cache_version + 1
        stmt = stmt.on_conflict_do_update(
            index_elements=[PlotCacheRow.land_number],
            set_=updates,
        ).returning(PlotCacheRow.cache_version)

        async with self._session("cache write") as session:
            result = await session.execute(stmt)
            version = result.scalar_one()
            await session.commit()
        return int(version)

    async def mark_needs_revalidation(self, land_number: str) -> None:
        key = normalize_land_number(land_number)
        async with self._session("revalidation flag") as session:
            await session.execute(
                update(PlotCacheRow)
                .where(PlotCacheRow.land_number == key)
                .values(needs_revalidation=True)
            )
            await session.commit()

    async def search_by_radius(
        self, center: GeoPoint, radius_m: float, max_age_hours: int = 168,
    ) -> list[CachedPlotHit]:
        """Cached plots within radius_m of center, nearest first."""
        async with self._session("cache radius search") as session:
            result = await session.execute(
                RADIUS_SEARCH_QUERY,
                {
                    "center_lat": center.latitude,
                    "center_lng": center.longitude,
                    "radius_m": float(radius_m),
                    "max_age_hours": int(max_age_hours),
                },
            )
            rows = [dict(r) for r in result.mappings().all()]
            await session.commit()  # search_count bump

        return [
            CachedPlotHit(
                entry=row_to_entry(r, distance_m=r.get("distance_m") or 0.0),
                distance_m=float(r.get("distance_m") or 0.0),
                is_fresh=bool(r.get("is_fresh")),
            )
            for r in rows
        ]

    async def get_stats(self, fresh_for: timedelta = timedelta(days=7)) -> CacheStats:
        """Counts by freshness, area, and source."""
        cutoff = datetime.now(timezone.utc) - fresh_for
        fresh_clause = and_(
            PlotCacheRow.last_verified > cutoff,
            PlotCacheRow.needs_revalidation.is_(False),
        )
        age_hours = extract("epoch", func.now() - PlotCacheRow.last_verified) / 3600

        async with self._session("cache stats") as session:
            totals = (await session.execute(
                select(
                    func.count(),
                    func.count().filter(fresh_clause),
                    func.count().filter(PlotCacheRow.needs_revalidation.is_(True)),
                    func.avg(age_hours),
                )
            )).one()
            by_area = (await session.execute(
                select(PlotCacheRow.area, func.count())
                .group_by(PlotCacheRow.area)
                .order_by(func.count().desc())
                .limit(STATS_AREA_LIMIT)
            )).all()
            by_source = (await session.execute(
                select(PlotCacheRow.data_source, func.count()).group_by(PlotCacheRow.data_source)
            )).all()

        total, fresh, flagged, avg_age = totals
        return CacheStats(
            total_cached=int(total or 0),
            fresh_count=int(fresh or 0),
            stale_count=int((total or 0) - (fresh or 0)),
            needs_revalidation_count=int(flagged or 0),
            avg_age_hours=round(float(avg_age or 0.0), 1),
            by_area={area: int(n) for area, n in by_area},
            by_source={source: int(n) for source, n in by_source},
        )

    # ------------------------------------------------------------------
    # Warming log
    # ------------------------------------------------------------------

    async def get_last_warmed(self, area: str) -> datetime | None:
        async with self._session("warming log read") as session:
            result = await session.execute(
                select(CacheWarmingLog.warmed_at).where(CacheWarmingLog.area == area)
            )
            return result.scalar_one_or_none()

    async def record_warming(self, area: str, plots_cached: int, warmed_at: datetime) -> None:
        stmt = insert(CacheWarmingLog).values(area=area, warmed_at=warmed_at, plots_cached=plots_cached)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CacheWarmingLog.area],
            set_={"warmed_at": stmt.excluded.warmed_at, "plots_cached": stmt.excluded.plots_cached},
        )
        async with self._session("warming log write") as session:
            await session.execute(stmt)
            await session.commit()
