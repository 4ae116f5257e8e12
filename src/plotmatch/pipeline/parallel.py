"""Parallel source queries with independent per-source timeouts.

Both providers are queried at the same time. Each call is bounded by its
own asyncio.wait_for, which cancels the in-flight HTTP request or SQL
statement on timeout. A failure in one source never affects the other:
every outcome, good or bad, comes back as a SourceResult.
"""

import asyncio
import logging
import time
from typing import Protocol

from plotmatch.config import settings
from plotmatch.core.types import GeoPoint, ParallelQueryResult, PlotRecord, SourceKind, SourceResult

logger = logging.getLogger(__name__)


class SourceClient(Protocol):
    source: SourceKind

    async def query(self, center: GeoPoint, radius_m: float) -> list[PlotRecord]: ...


async def run_source(
    client: SourceClient, center: GeoPoint, radius_m: float, timeout_s: float,
) -> SourceResult:
    """Query one source and fold timeouts and errors into a failed result."""
    label = client.source.value
    start = time.monotonic()
    try:
        records = await asyncio.wait_for(client.query(center, radius_m), timeout=timeout_s)
    except asyncio.TimeoutError:
        elapsed = int((time.monotonic() - start) * 1000)
        error = f"{label} timed out after {int(timeout_s * 1000)}ms"
        logger.warning(error, extra={"source": label, "duration_ms": elapsed})
        return SourceResult(source=client.source, success=False, error=error, elapsed_ms=elapsed)
    except Exception as e:
        elapsed = int((time.monotonic() - start) * 1000)
        logger.warning("%s query failed: %s", label, e, extra={"source": label, "duration_ms": elapsed})
        return SourceResult(source=client.source, success=False, error=str(e) or type(e).__name__,
                            elapsed_ms=elapsed)

    elapsed = int((time.monotonic() - start) * 1000)
    logger.info("%s returned %d plot(s)", label, len(records), extra={"source": label, "duration_ms": elapsed})
    return SourceResult(source=client.source, records=records, elapsed_ms=elapsed)


class ParallelQueryEngine:
    """Runs the Authoritative and Fallback clients concurrently."""

    def __init__(
        self,
        authoritative: SourceClient,
        fallback: SourceClient,
        authoritative_timeout_s: float | None = None,
        fallback_timeout_s: float | None = None,
    ) -> None:
        self.authoritative = authoritative
        self.fallback = fallback
        self.authoritative_timeout_s = (
            authoritative_timeout_s if authoritative_timeout_s is not None else settings.gis_timeout_s
        )
        self.fallback_timeout_s = fallback_timeout_s if fallback_timeout_s is not None else settings.status_timeout_s

    async def query(self, center: GeoPoint, radius_m: float) -> ParallelQueryResult:
        authoritative, fallback = await asyncio.gather(
            run_source(self.authoritative, center, radius_m, self.authoritative_timeout_s),
            run_source(self.fallback, center, radius_m, self.fallback_timeout_s),
        )
        if not authoritative.success and not fallback.success:
            logger.error("Both sources failed: %s | %s", authoritative.error, fallback.error)
        return ParallelQueryResult(authoritative=authoritative, fallback=fallback)
