"""Async database engine and session factory.

Provides a single engine per process with lazy initialization.
All consumers go through get_session() for connection management.
"""

import logging
from collections.abc import Awaitable, Callable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from plotmatch.config import settings
from plotmatch.storage.models import Base

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Awaitable[AsyncSession]]

_engine = None
_session_factory = None

# Haversine distance in meters, same earth radius as retrieval.geo
_DISTANCE_FUNCTION = """
    CREATE OR REPLACE FUNCTION plot_distance_m(
        lat1 DOUBLE PRECISION, lng1 DOUBLE PRECISION,
        lat2 DOUBLE PRECISION, lng2 DOUBLE PRECISION
    )
    RETURNS DOUBLE PRECISION AS $$
        SELECT 2 * 6371000 * asin(least(1.0, sqrt(
            power(sin(radians(lat2 - lat1) / 2), 2)
            + cos(radians(lat1)) * cos(radians(lat2))
              * power(sin(radians(lng2 - lng1) / 2), 2)
        )))
    $$ LANGUAGE sql IMMUTABLE;
"""

# Radius search over the cache table. Bumps search_count on every hit and
# reports freshness against max_age_hours and the revalidation flag.
_RADIUS_SEARCH_FUNCTION = """
    CREATE OR REPLACE FUNCTION search_cached_plots_by_radius(
        center_lat    DOUBLE PRECISION,
        center_lng    DOUBLE PRECISION,
        radius_m      DOUBLE PRECISION,
        max_age_hours INTEGER DEFAULT 168
    )
    RETURNS TABLE (
        land_number         VARCHAR,
        area                VARCHAR,
        latitude            DOUBLE PRECISION,
        longitude           DOUBLE PRECISION,
        land_status         VARCHAR,
        property_type       VARCHAR,
        last_certificate_no VARCHAR,
        data_source         VARCHAR,
        cache_version       INTEGER,
        last_verified       TIMESTAMPTZ,
        verification_source VARCHAR,
        needs_revalidation  BOOLEAN,
        raw_data            JSONB,
        distance_m          DOUBLE PRECISION,
        is_fresh            BOOLEAN
    ) AS $$
        WITH hits AS (
            UPDATE plot_data_cache p
            SET search_count = p.search_count + 1
            WHERE plot_distance_m(center_lat, center_lng, p.latitude, p.longitude) <= radius_m
            RETURNING p.*
        )
        SELECT
            h.land_number, h.area, h.latitude, h.longitude,
            h.land_status, h.property_type, h.last_certificate_no, h.data_source,
            h.cache_version, h.last_verified, h.verification_source,
            h.needs_revalidation, h.raw_data,
            round(plot_distance_m(center_lat, center_lng, h.latitude, h.longitude)) AS distance_m,
            (h.last_verified > now() - make_interval(hours => max_age_hours))
                AND NOT h.needs_revalidation AS is_fresh
        FROM hits h
        ORDER BY 14;
    $$ LANGUAGE sql;
"""


def _get_engine():
    global _engine
    if _engine is None:
        kwargs: dict = {"echo": False}
        connect_args: dict = {"timeout": 10}  # asyncpg connection timeout
        if settings.database_require_ssl:
            import ssl

            connect_args["ssl"] = ssl.create_default_context()
        kwargs["connect_args"] = connect_args
        _engine = create_async_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_recycle=300,
            **kwargs,
        )
    return _engine


async def init_db() -> None:
    """Create cache tables and the radius-search functions if missing."""
    engine = _get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(_DISTANCE_FUNCTION))
        await conn.execute(text(_RADIUS_SEARCH_FUNCTION))

    logger.info("Database initialized")


async def get_session() -> AsyncSession:
    """Get an async database session."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(_get_engine(), expire_on_commit=False)
    return _session_factory()


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
