"""Tests for area cache warming — cooldown, batching, in-flight collapse."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import CENTER, make_plot
from plotmatch.cache.plot_cache import PlotDataCache
from plotmatch.cache.warmer import CacheWarmer
from plotmatch.core.errors import SourceUnavailable
from plotmatch.core.types import VerificationSource


def _plots(n: int):
    return [make_plot(f"W-{i}", area="Majan", lat_offset=0.0001 * i) for i in range(n)]


def _warmer(store, clock, fetcher, **kwargs):
    cache = PlotDataCache(store, clock=clock)
    sleep = AsyncMock()
    warmer = CacheWarmer(cache, store, source_fetcher=fetcher, clock=clock, sleep=sleep, **kwargs)
    return warmer, sleep


class TestCacheWarmer:
    @pytest.mark.asyncio
    async def test_warms_and_logs(self, store, clock):
        fetcher = AsyncMock(return_value=_plots(3))
        warmer, _ = _warmer(store, clock, fetcher)

        count = await warmer.warm_cache_for_area("majan", CENTER)

        assert count == 3
        fetcher.assert_awaited_once_with(CENTER, 5000)
        assert len(store.rows) == 3
        assert all(e.verification_source is VerificationSource.MANUAL_IMPORT for e in store.rows.values())
        assert store.warming["Wadi Al Safa 3"] == (clock.now, 3)

    @pytest.mark.asyncio
    async def test_cooldown_skips_fetch(self, store, clock):
        fetcher = AsyncMock(return_value=_plots(2))
        warmer, _ = _warmer(store, clock, fetcher)

        assert await warmer.warm_cache_for_area("Majan", CENTER) == 2
        clock.advance(hours=23)
        assert await warmer.warm_cache_for_area("MAJAN", CENTER) == 0
        assert fetcher.await_count == 1

        clock.advance(hours=2)
        assert await warmer.warm_cache_for_area("Majan", CENTER) == 2
        assert fetcher.await_count == 2

    @pytest.mark.asyncio
    async def test_batches_with_delay(self, store, clock):
        fetcher = AsyncMock(return_value=_plots(25))
        warmer, sleep = _warmer(store, clock, fetcher, batch_size=10, batch_delay_s=1.0)

        assert await warmer.warm_cache_for_area("Majan", CENTER) == 25

        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.0)

    @pytest.mark.asyncio
    async def test_fetch_failure_writes_no_log(self, store, clock):
        fetcher = AsyncMock(side_effect=SourceUnavailable("all", "both down"))
        warmer, _ = _warmer(store, clock, fetcher)

        with pytest.raises(SourceUnavailable):
            await warmer.warm_cache_for_area("Majan", CENTER)

        assert store.warming == {}
        # not stuck in-flight after a failure
        fetcher.side_effect = None
        fetcher.return_value = _plots(1)
        assert await warmer.warm_cache_for_area("Majan", CENTER) == 1

    @pytest.mark.asyncio
    async def test_warming_log_read_failure_assumes_cold(self, store, clock):
        store.warming["Wadi Al Safa 3"] = (clock.now, 5)
        store.fail_reads = True
        fetcher = AsyncMock(return_value=_plots(1))
        warmer, _ = _warmer(store, clock, fetcher)

        assert await warmer.warm_cache_for_area("Majan", CENTER) == 1

    @pytest.mark.asyncio
    async def test_concurrent_warmings_collapse(self, store, clock):
        release = asyncio.Event()

        async def slow_fetch(center, radius_m):
            await release.wait()
            return _plots(2)

        warmer, _ = _warmer(store, clock, slow_fetch)

        first = asyncio.create_task(warmer.warm_cache_for_area("Majan", CENTER))
        await asyncio.sleep(0)
        second = await warmer.warm_cache_for_area("majan", CENTER)
        release.set()

        assert second == 0
        assert await first == 2

    @pytest.mark.asyncio
    async def test_no_fetcher(self, store, clock):
        warmer = CacheWarmer(PlotDataCache(store, clock=clock), store, clock=clock)
        with pytest.raises(ValueError):
            await warmer.warm_cache_for_area("Majan", CENTER)
