"""Cache warming — populate the plot cache for an area ahead of user searches.

Respects a per-area cooldown recorded in the durable warming log so an area
is not re-fetched from upstream more than once per window, and paces cache
writes in batches to stay inside upstream rate limits.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

from plotmatch.cache.plot_cache import Clock, PlotDataCache
from plotmatch.core.errors import CacheIOError
from plotmatch.core.types import GeoPoint, PlotRecord, VerificationSource
from plotmatch.retrieval.normalize import normalize_area
from plotmatch.storage.store import PlotCacheStore

logger = logging.getLogger(__name__)

SourceFetcher = Callable[[GeoPoint, float], Awaitable[list[PlotRecord]]]

DEFAULT_WARM_RADIUS_M = 5_000


class CacheWarmer:
    def __init__(
        self,
        cache: PlotDataCache,
        store: PlotCacheStore,
        source_fetcher: SourceFetcher | None = None,
        cooldown: timedelta = timedelta(hours=24),
        batch_size: int = 10,
        batch_delay_s: float = 1.0,
        clock: Clock | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.cache = cache
        self.store = store
        self.source_fetcher = source_fetcher
        self.cooldown = cooldown
        self.batch_size = max(1, batch_size)
        self.batch_delay_s = batch_delay_s
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep
        self._in_flight: set[str] = set()

    async def warm_cache_for_area(
        self,
        area: str,
        center: GeoPoint,
        radius_m: float = DEFAULT_WARM_RADIUS_M,
        source_fetcher: SourceFetcher | None = None,
    ) -> int:
        """Fetch and cache every plot around center. Returns the number cached.

        Returns 0 without touching upstream when the area was warmed within
        the cooldown window or is already being warmed by this process.

        Raises:
            SourceUnavailable: the fetcher failed; no warming log row is written.
        """
        fetcher = source_fetcher or self.source_fetcher
        if fetcher is None:
            raise ValueError("No source fetcher configured for cache warming")

        canonical = normalize_area(area)
        if canonical in self._in_flight:
            logger.info("Warming already in progress — skipped", extra={"area": canonical})
            return 0

        self._in_flight.add(canonical)
        try:
            if await self._within_cooldown(canonical):
                logger.info("Warmed within cooldown window — skipped", extra={"area": canonical})
                return 0

            logger.info("Cache warming started (r=%sm)", radius_m, extra={"area": canonical})
            records = await fetcher(center, radius_m)

            stored = 0
            for record in records:
                await self.cache.set_plot_data(record, VerificationSource.MANUAL_IMPORT)
                stored += 1
                if stored % self.batch_size == 0:
                    await self._sleep(self.batch_delay_s)

            try:
                await self.store.record_warming(canonical, stored, self._clock())
            except CacheIOError as e:
                logger.warning("Warming log write failed: %s", e, extra={"area": canonical})

            logger.info("Cache warming done: %d plots", stored, extra={"area": canonical})
            return stored
        finally:
            self._in_flight.discard(canonical)

    async def _within_cooldown(self, area: str) -> bool:
        try:
            last = await self.store.get_last_warmed(area)
        except CacheIOError as e:
            logger.warning("Warming log read failed, assuming cold: %s", e, extra={"area": area})
            return False
        return last is not None and self._clock() - last < self.cooldown
