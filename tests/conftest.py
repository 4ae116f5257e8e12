"""Shared test fixtures."""

import copy
from datetime import datetime, timedelta, timezone

import mlflow
import pytest

from plotmatch.core.errors import CacheIOError
from plotmatch.core.types import (
    CachedPlotHit,
    CacheEntry,
    CacheStats,
    GeoPoint,
    PlotRecord,
    SourceKind,
)
from plotmatch.retrieval.geo import haversine_m
from plotmatch.retrieval.normalize import generate_plot_id, normalize_land_number

CENTER = GeoPoint(25.0657, 55.1713)


@pytest.fixture(autouse=True)
def _disable_mlflow_tracing():
    """Disable MLflow tracing during tests — no side effects, no mlruns/ writes."""
    mlflow.tracing.disable()
    yield
    mlflow.tracing.enable()


def make_plot(
    land_number: str = "344-0123",
    area: str = "Al Barsha South",
    lat_offset: float = 0.001,
    source: SourceKind = SourceKind.AUTHORITATIVE,
    **kwargs,
) -> PlotRecord:
    """A plot due north of CENTER; 0.001 deg of latitude is ~111 m."""
    lat = CENTER.latitude + lat_offset
    defaults = dict(
        plot_id=generate_plot_id(source, land_number),
        land_number=land_number,
        area=area,
        latitude=lat,
        longitude=CENTER.longitude,
        distance_from_center_m=haversine_m(CENTER.latitude, CENTER.longitude, lat, CENTER.longitude),
        source_kind=source,
        confidence_score=source.confidence,
    )
    defaults.update(kwargs)
    return PlotRecord(**defaults)


class InMemoryPlotStore:
    """PlotCacheStore double with the same contract, backed by dicts."""

    def __init__(self) -> None:
        self.rows: dict[str, CacheEntry] = {}
        self.warming: dict[str, tuple[datetime, int]] = {}
        self.flagged: list[str] = []
        self.fail_reads = False
        self.fail_writes = False
        self.now = lambda: datetime.now(timezone.utc)

    def _check(self, failing: bool, operation: str) -> None:
        if failing:
            raise CacheIOError(f"{operation} failed: connection refused")

    async def get(self, land_number):
        self._check(self.fail_reads, "cache read")
        entry = self.rows.get(normalize_land_number(land_number))
        return copy.deepcopy(entry)

    async def upsert(self, entry):
        self._check(self.fail_writes, "cache write")
        key = normalize_land_number(entry.record.land_number)
        existing = self.rows.get(key)
        stored = copy.deepcopy(entry)
        stored.cache_version = existing.cache_version + 1 if existing else entry.cache_version
        self.rows[key] = stored
        return stored.cache_version

    async def mark_needs_revalidation(self, land_number):
        self._check(self.fail_writes, "revalidation flag")
        key = normalize_land_number(land_number)
        self.flagged.append(key)
        if key in self.rows:
            self.rows[key].needs_revalidation = True

    async def search_by_radius(self, center, radius_m, max_age_hours=168):
        self._check(self.fail_reads, "cache radius search")
        hits = []
        for entry in self.rows.values():
            rec = entry.record
            distance = haversine_m(center.latitude, center.longitude, rec.latitude, rec.longitude)
            if distance > radius_m:
                continue
            fresh = (self.now() - entry.last_verified < timedelta(hours=max_age_hours)
                     and not entry.needs_revalidation)
            hit_entry = copy.deepcopy(entry)
            hit_entry.record.distance_from_center_m = distance
            hits.append(CachedPlotHit(entry=hit_entry, distance_m=distance, is_fresh=fresh))
        return sorted(hits, key=lambda h: h.distance_m)

    async def get_stats(self, fresh_for=timedelta(days=7)):
        self._check(self.fail_reads, "cache stats")
        now = self.now()
        entries = list(self.rows.values())
        fresh = sum(1 for e in entries if now - e.last_verified < fresh_for and not e.needs_revalidation)
        by_area: dict[str, int] = {}
        by_source: dict[str, int] = {}
        for e in entries:
            by_area[e.record.area] = by_area.get(e.record.area, 0) + 1
            by_source[e.record.source_kind.value] = by_source.get(e.record.source_kind.value, 0) + 1
        ages = [(now - e.last_verified).total_seconds() / 3600 for e in entries]
        return CacheStats(
            total_cached=len(entries),
            fresh_count=fresh,
            stale_count=len(entries) - fresh,
            needs_revalidation_count=sum(1 for e in entries if e.needs_revalidation),
            avg_age_hours=round(sum(ages) / len(ages), 1) if ages else 0.0,
            by_area=by_area,
            by_source=by_source,
        )

    async def get_last_warmed(self, area):
        self._check(self.fail_reads, "warming log read")
        row = self.warming.get(area)
        return row[0] if row else None

    async def record_warming(self, area, plots_cached, warmed_at):
        self._check(self.fail_writes, "warming log write")
        self.warming[area] = (warmed_at, plots_cached)


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def store():
    return InMemoryPlotStore()


@pytest.fixture
def clock(store):
    c = FakeClock()
    store.now = c
    return c


class StubSource:
    """SourceClient double: returns fixed records, or raises."""

    def __init__(self, source: SourceKind, records=None, exc: Exception | None = None) -> None:
        self.source = source
        self.records = records or []
        self.exc = exc
        self.calls = 0

    async def query(self, center, radius_m):
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        return list(self.records)
