"""Consolidation — merge Authoritative and Fallback records into one list.

Records are joined on MatchKey (land number + canonical area). An
Authoritative record whose key has a Fallback counterpart carrying a land
status gets that status copied in; nothing else crosses over. Every
Fallback record not used for enrichment is emitted on its own at fallback
confidence. The output is sorted by distance and bounded at radius * 1.1.
"""

import logging
import time
from dataclasses import replace

from plotmatch.core.types import (
    RADIUS_TOLERANCE,
    ConsolidationResult,
    PlotRecord,
    SourceKind,
)
from plotmatch.observability.tracing import trace
from plotmatch.retrieval.normalize import build_match_key

logger = logging.getLogger(__name__)


def enrich_with_status(authoritative: PlotRecord, fallback: PlotRecord) -> PlotRecord:
    """Copy only land status (and its provenance) onto an Authoritative record."""
    return replace(
        authoritative,
        land_status=fallback.land_status,
        land_status_source=SourceKind.FALLBACK.value,
        attributes=dict(authoritative.attributes),
    )


def as_fallback(record: PlotRecord) -> PlotRecord:
    """A standalone Fallback record at fallback confidence."""
    return replace(
        record,
        source_kind=SourceKind.FALLBACK,
        confidence_score=SourceKind.FALLBACK.confidence,
        attributes=dict(record.attributes),
    )


def _index_by_match_key(records: list[PlotRecord], label: str) -> tuple[dict[str, PlotRecord], int]:
    """First record per MatchKey wins; later ones are counted and logged."""
    index: dict[str, PlotRecord] = {}
    dropped = 0
    for rec in records:
        key = build_match_key(rec.land_number, rec.area)
        if key in index:
            dropped += 1
            logger.warning("Duplicate %s record for %s dropped", label, key,
                           extra={"source": label, "land_number": rec.land_number})
            continue
        index[key] = rec
    return index, dropped


@trace(name="consolidate", span_type="CHAIN")
def consolidate(
    authoritative: list[PlotRecord],
    fallback: list[PlotRecord],
    radius_m: float,
) -> ConsolidationResult:
    """Merge both sources. The result does not depend on input order within a source
    beyond which duplicate wins, and enrichment never lowers confidence."""
    start = time.monotonic()

    fallback_index, fb_dupes = _index_by_match_key(fallback, SourceKind.FALLBACK.value)
    auth_index, auth_dupes = _index_by_match_key(authoritative, SourceKind.AUTHORITATIVE.value)

    consumed: set[str] = set()
    merged: list[PlotRecord] = []
    enriched = 0

    for key, rec in auth_index.items():
        match = fallback_index.get(key)
        if match is not None and match.land_status:
            merged.append(enrich_with_status(rec, match))
            consumed.add(key)
            enriched += 1
        else:
            merged.append(rec)

    standalone = [as_fallback(rec) for key, rec in fallback_index.items() if key not in consumed]
    merged.extend(standalone)

    limit = radius_m * RADIUS_TOLERANCE
    plots = sorted(
        (p for p in merged if p.distance_from_center_m <= limit),
        key=lambda p: (p.distance_from_center_m, p.plot_id),
    )

    elapsed = int((time.monotonic() - start) * 1000)
    result = ConsolidationResult(
        plots=plots,
        total_count=len(plots),
        gis_dda_count=len(authoritative),
        property_status_count=len(fallback),
        fallback_count=sum(1 for p in plots if p.is_fallback),
        freehold_enriched_count=enriched,
        duplicates_dropped=fb_dupes + auth_dupes,
        search_radius_m=radius_m,
        execution_time_ms=elapsed,
    )
    logger.info(
        "Consolidated %d plot(s): %d GIS/DDA, %d fallback, %d enriched",
        result.total_count, result.gis_dda_count, result.fallback_count, enriched,
        extra={"step": "consolidate", "duration_ms": elapsed},
    )
    return result
