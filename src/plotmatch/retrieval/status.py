"""Fallback source — land status records from the property status store.

The status store exposes a point-radius stored function,
search_dld_plots_by_radius(center_lat, center_lng, radius_meters), returning
point rows with land_status and the last certificate number.
"""

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from plotmatch.core.errors import SourceUnavailable
from plotmatch.core.types import RADIUS_TOLERANCE, GeoPoint, PlotRecord, SourceKind
from plotmatch.observability.tracing import trace
from plotmatch.retrieval.normalize import generate_plot_id, normalize_area
from plotmatch.storage.db import SessionFactory, get_session

logger = logging.getLogger(__name__)

STATUS_RADIUS_QUERY = text(
    "SELECT * FROM search_dld_plots_by_radius(:center_lat, :center_lng, :radius_meters)"
)


def row_to_record(row: dict) -> PlotRecord:
    """Map one status-store row to a Fallback PlotRecord."""
    land_number = str(row.get("land_number") or "UNKNOWN").strip()
    land_status = row.get("land_status") or None
    return PlotRecord(
        plot_id=generate_plot_id(SourceKind.FALLBACK, land_number),
        land_number=land_number,
        area=normalize_area(row.get("area")),
        latitude=float(row["latitude"]),
        longitude=float(row["longitude"]),
        distance_from_center_m=float(round(float(row.get("distance_m") or 0))),
        source_kind=SourceKind.FALLBACK,
        confidence_score=SourceKind.FALLBACK.confidence,
        land_status=land_status,
        land_status_source=SourceKind.FALLBACK.value if land_status else None,
        last_certificate_no=row.get("certificate_number") or None,
        property_type=row.get("property_type") or None,
    )


class PropertyStatusClient:
    """Radius lookup against the status store's stored function."""

    source = SourceKind.FALLBACK

    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory or get_session

    @trace(name="query_property_status", span_type="TOOL")
    async def query(self, center: GeoPoint, radius_m: float) -> list[PlotRecord]:
        """Return status records within radius * 1.1 of center.

        Raises:
            SourceUnavailable: the stored function failed. Malformed rows are
                skipped one at a time.
        """
        session = await self._session_factory()
        try:
            result = await session.execute(
                STATUS_RADIUS_QUERY,
                {
                    "center_lat": center.latitude,
                    "center_lng": center.longitude,
                    "radius_meters": int(round(radius_m)),
                },
            )
            rows = [dict(r) for r in result.mappings().all()]
        except SQLAlchemyError as e:
            raise SourceUnavailable(self.source.value, f"Status store query failed: {e}") from e
        finally:
            await session.close()

        limit = radius_m * RADIUS_TOLERANCE
        records = []
        for row in rows:
            try:
                record = row_to_record(row)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed status row: %s", e,
                               extra={"source": self.source.value, "land_number": row.get("land_number")})
                continue
            if record.distance_from_center_m <= limit:
                records.append(record)
        logger.info("Property Status: %d plot(s)", len(records), extra={"source": self.source.value})
        return records
