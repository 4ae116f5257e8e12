"""Core domain types shared across all plotmatch modules."""

from plotmatch.core.errors import CacheIOError, PlotMatchError, SourceUnavailable
from plotmatch.core.types import (
    CacheEntry,
    CacheStats,
    ConsolidationResult,
    GeoPoint,
    LandMatchResult,
    ParallelQueryResult,
    PlotRecord,
    SourceKind,
    SourceResult,
    VerificationSource,
)

__all__ = [
    "CacheEntry",
    "CacheIOError",
    "CacheStats",
    "ConsolidationResult",
    "GeoPoint",
    "LandMatchResult",
    "ParallelQueryResult",
    "PlotMatchError",
    "PlotRecord",
    "SourceKind",
    "SourceResult",
    "SourceUnavailable",
    "VerificationSource",
]
