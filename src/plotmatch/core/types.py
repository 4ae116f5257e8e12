"""Domain types for the plotmatch land-matching service.

All shared dataclasses and enums live here to prevent circular imports and
establish a single source of truth for the domain model. Every other module
imports from here.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

AUTHORITATIVE_CONFIDENCE = 1.0
FALLBACK_CONFIDENCE = 0.65

# Records within radius * tolerance are kept; absorbs centroid offset.
RADIUS_TOLERANCE = 1.1


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SourceKind(str, Enum):
    """Which upstream provider a record came from."""

    AUTHORITATIVE = "GIS/DDA"
    FALLBACK = "Property Status / GIS"

    @property
    def id_prefix(self) -> str:
        return "GIS" if self is SourceKind.AUTHORITATIVE else "DLD"

    @property
    def confidence(self) -> float:
        if self is SourceKind.AUTHORITATIVE:
            return AUTHORITATIVE_CONFIDENCE
        return FALLBACK_CONFIDENCE


class VerificationSource(str, Enum):
    """How a cached row was last verified."""

    USER_SEARCH = "user_search"
    API_WEBHOOK = "api_webhook"
    MANUAL_IMPORT = "manual_import"


# ---------------------------------------------------------------------------
# Plot records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GeoPoint:
    """WGS84 coordinate pair in degrees."""

    latitude: float
    longitude: float


@dataclass
class PlotRecord:
    """A single land plot observation from one provider."""

    plot_id: str
    land_number: str
    area: str
    latitude: float
    longitude: float
    distance_from_center_m: float
    source_kind: SourceKind
    confidence_score: float
    land_status: str | None = None
    land_status_source: str | None = None
    geometry: dict | None = None
    last_certificate_no: str | None = None
    property_type: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def is_fallback(self) -> bool:
        return self.source_kind is SourceKind.FALLBACK


# ---------------------------------------------------------------------------
# Query / consolidation results
# ---------------------------------------------------------------------------

@dataclass
class SourceResult:
    """Outcome of one provider query. A failure never carries records."""

    source: SourceKind
    records: list[PlotRecord] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    elapsed_ms: int = 0


@dataclass
class ParallelQueryResult:
    authoritative: SourceResult
    fallback: SourceResult


@dataclass
class ConsolidationResult:
    """Merged plot list plus counts used for observability only."""

    plots: list[PlotRecord]
    total_count: int
    gis_dda_count: int
    property_status_count: int
    fallback_count: int
    freehold_enriched_count: int
    duplicates_dropped: int
    search_radius_m: float
    execution_time_ms: int


# ---------------------------------------------------------------------------
# Cache types
# ---------------------------------------------------------------------------

@dataclass
class CacheEntry:
    """A PlotRecord as held by the cache tiers."""

    record: PlotRecord
    last_verified: datetime
    cache_version: int = 1
    needs_revalidation: bool = False
    verification_source: VerificationSource = VerificationSource.USER_SEARCH


@dataclass
class CachedPlotHit:
    """One row of a durable radius search."""

    entry: CacheEntry
    distance_m: float
    is_fresh: bool


@dataclass
class CacheStats:
    total_cached: int = 0
    fresh_count: int = 0
    stale_count: int = 0
    needs_revalidation_count: int = 0
    avg_age_hours: float = 0.0
    by_area: dict[str, int] = field(default_factory=dict)
    by_source: dict[str, int] = field(default_factory=dict)
    memory_entries: int = 0
    memory_capacity: int = 0


# ---------------------------------------------------------------------------
# Service output
# ---------------------------------------------------------------------------

@dataclass
class LandMatchResult:
    """Everything the request handler learned while answering one search."""

    plots: list[PlotRecord]
    center: GeoPoint
    radius_m: float
    source: str  # "live" or "cache"
    execution_time_ms: int
    consolidation: ConsolidationResult | None = None
    query: ParallelQueryResult | None = None
