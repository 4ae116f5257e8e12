"""Two-tier plot cache: per-instance LRU in front of the durable store.

Read priority:
  1. In-memory LRU (sub-ms)
  2. Durable store (single-row lookup), warming memory on a hit
  3. None — caller queries the live sources

Stale-while-revalidate: inside the grace window after TTL an expired entry
is still served when the caller allows it, and the durable row is flagged
needs_revalidation by a background task the caller never waits on.

Durable failures are logged and treated as misses / skipped writes.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum

from plotmatch.cache.lru import LruCache
from plotmatch.core.errors import CacheIOError
from plotmatch.core.types import (
    CachedPlotHit,
    CacheEntry,
    CacheStats,
    GeoPoint,
    PlotRecord,
    VerificationSource,
)
from plotmatch.retrieval.normalize import normalize_area, normalize_land_number
from plotmatch.storage.store import PlotCacheStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def plot_cache_key(land_number: str) -> str:
    """'  344-0123a ' → 'plot:344-0123A'"""
    return f"plot:{normalize_land_number(land_number)}"


class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"  # past TTL, inside the grace window
    EXPIRED = "expired"


@dataclass(frozen=True)
class CachePolicy:
    """TTL tiers by data volatility plus the stale grace window.

    A record carries one TTL: the tightest tier among the fields it holds.
    An entry flagged needs_revalidation is never fresh, whatever its age.
    """

    plot_data_ttl: timedelta = timedelta(days=7)
    land_status_ttl: timedelta = timedelta(days=30)
    coordinates_ttl: timedelta = timedelta(days=90)
    stale_grace: timedelta = timedelta(hours=24)
    stale_while_revalidate: bool = True
    memory_entries: int = 500

    def ttl_for(self, record: PlotRecord) -> timedelta:
        ttls = [self.coordinates_ttl]
        if record.land_status or record.last_certificate_no:
            ttls.append(self.land_status_ttl)
        if record.attributes or record.property_type:
            ttls.append(self.plot_data_ttl)
        return min(ttls)

    def freshness(self, entry: CacheEntry, now: datetime) -> Freshness:
        age = now - entry.last_verified
        ttl = self.ttl_for(entry.record)
        if age < ttl and not entry.needs_revalidation:
            return Freshness.FRESH
        if self.stale_while_revalidate and age < ttl + self.stale_grace:
            return Freshness.STALE
        return Freshness.EXPIRED


class PlotDataCache:
    """Per-instance plot cache. Construct one per service with its store."""

    def __init__(
        self,
        store: PlotCacheStore,
        policy: CachePolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.policy = policy or CachePolicy()
        self.memory = LruCache(self.policy.memory_entries)
        self._clock = clock or _utcnow
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_plot_data(
        self,
        land_number: str,
        force_refresh: bool = False,
        allow_stale: bool = False,
    ) -> CacheEntry | None:
        """Cached entry for a land number, or None when live sources must be queried."""
        if force_refresh:
            return None

        key = plot_cache_key(land_number)
        now = self._clock()

        entry = self.memory.get(key)
        if entry is not None:
            served = self._serve(entry, now, allow_stale)
            if served is not None:
                return served

        try:
            entry = await self.store.get(land_number)
        except CacheIOError as e:
            logger.warning("Cache read failed, treating as miss: %s", e, extra={"land_number": land_number})
            return None

        if entry is None:
            return None
        served = self._serve(entry, now, allow_stale)
        if served is not None:
            self.memory.set(key, served)
        return served

    def _serve(self, entry: CacheEntry, now: datetime, allow_stale: bool) -> CacheEntry | None:
        state = self.policy.freshness(entry, now)
        if state is Freshness.FRESH:
            return entry
        if state is Freshness.STALE and allow_stale:
            if not entry.needs_revalidation:
                entry.needs_revalidation = True
                self._schedule_revalidation(entry.record.land_number)
            return entry
        return None

    async def search_by_radius(
        self, center: GeoPoint, radius_m: float, max_age_hours: int | None = None,
    ) -> list[CachedPlotHit]:
        """Durable radius lookup; an unavailable store yields no hits."""
        if max_age_hours is None:
            max_age_hours = int(self.policy.plot_data_ttl.total_seconds() // 3600)
        try:
            return await self.store.search_by_radius(center, radius_m, max_age_hours)
        except CacheIOError as e:
            logger.warning("Cache radius search failed, treating as miss: %s", e)
            return []

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def set_plot_data(
        self,
        record: PlotRecord,
        verification_source: VerificationSource = VerificationSource.USER_SEARCH,
    ) -> CacheEntry:
        """Write-through a live record. Area is normalized before anything is stored."""
        stored = replace(record, area=normalize_area(record.area), geometry=None)
        key = plot_cache_key(record.land_number)

        previous = self.memory.peek(key)
        entry = CacheEntry(
            record=stored,
            last_verified=self._clock(),
            cache_version=previous.cache_version + 1 if previous else 1,
            needs_revalidation=False,
            verification_source=verification_source,
        )
        self.memory.set(key, entry)

        try:
            entry.cache_version = await self.store.upsert(entry)
        except CacheIOError as e:
            logger.warning("Cache write failed, memory tier only: %s", e, extra={"land_number": record.land_number})
        return entry

    async def invalidate(self, land_number: str) -> None:
        """Drop from memory and flag the durable row. Durable rows are never deleted."""
        self.memory.delete(plot_cache_key(land_number))
        try:
            await self.store.mark_needs_revalidation(land_number)
        except CacheIOError as e:
            logger.warning("Revalidation flag failed: %s", e, extra={"land_number": land_number})
        logger.info("Invalidated cached plot", extra={"land_number": normalize_land_number(land_number)})

    # ------------------------------------------------------------------
    # Stats / lifecycle
    # ------------------------------------------------------------------

    async def get_stats(self) -> CacheStats:
        """Durable counts plus memory-tier occupancy. Raises CacheIOError."""
        stats = await self.store.get_stats(fresh_for=self.policy.plot_data_ttl)
        stats.memory_entries = len(self.memory)
        stats.memory_capacity = self.memory.capacity
        return stats

    async def wait_pending(self) -> None:
        """Wait for outstanding background revalidation writes."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule_revalidation(self, land_number: str) -> None:
        task = asyncio.create_task(self._flag_for_revalidation(land_number))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _flag_for_revalidation(self, land_number: str) -> None:
        try:
            await self.store.mark_needs_revalidation(land_number)
        except CacheIOError as e:
            logger.warning("Background revalidation flag failed: %s", e, extra={"land_number": land_number})
