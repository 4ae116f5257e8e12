"""Authoritative source — DDA land-base plots via ArcGIS MapServer.

Runs a point + distance spatial query against the plot polygon layer and
maps each feature to a PlotRecord located at its first-ring centroid.
The endpoint is public, no authentication required.
"""

import logging

import httpx

from plotmatch.config import settings
from plotmatch.core.errors import SourceUnavailable
from plotmatch.core.types import RADIUS_TOLERANCE, GeoPoint, PlotRecord, SourceKind
from plotmatch.observability.tracing import start_span, trace
from plotmatch.retrieval.geo import feature_location, haversine_m
from plotmatch.retrieval.normalize import generate_plot_id, normalize_area

logger = logging.getLogger(__name__)

USER_AGENT = "plotmatch/1.0"

# ArcGIS attribute → carried-through attribute name
GIS_ATTRIBUTE_MAP = {
    "AREA_SQM": "area_sqm",
    "GFA_SQM": "gfa_sqm",
    "MAX_HEIGHT_FLOORS": "max_height_floors",
    "MAIN_LANDUSE": "main_landuse",
    "SUB_LANDUSE": "sub_landuse",
    "ENTITY_NAME": "entity_name",
    "PROJECT_NAME": "project_name",
    "MAX_PLOT_COVERAGE": "plot_coverage",
    "FREEZE_REASON": "freeze_reason",
    "CONSTRUCTION_STATUS": "construction_status",
    "SITE_STATUS": "site_status",
}


def _land_number(attrs: dict) -> str | None:
    """PLOT_NUMBER, or a stable placeholder keyed on OBJECTID."""
    plot_number = str(attrs.get("PLOT_NUMBER") or "").strip()
    if plot_number:
        return plot_number
    object_id = attrs.get("OBJECTID")
    if object_id is not None:
        return f"UNKNOWN_{object_id}"
    return None


def feature_to_record(feature: dict, center: GeoPoint, radius_m: float) -> PlotRecord | None:
    """Map one ArcGIS feature to a PlotRecord, or None if unusable / out of range."""
    attrs = feature.get("attributes") or {}
    geometry = feature.get("geometry")

    land_number = _land_number(attrs)
    if land_number is None:
        logger.debug("Skipping GIS feature without PLOT_NUMBER or OBJECTID")
        return None

    location = feature_location(geometry, center)
    distance = haversine_m(center.latitude, center.longitude, location.latitude, location.longitude)
    if distance > radius_m * RADIUS_TOLERANCE:
        return None

    attributes = {name: attrs[key] for key, name in GIS_ATTRIBUTE_MAP.items() if attrs.get(key) is not None}
    attributes["is_frozen"] = attrs.get("IS_FROZEN") == 1

    return PlotRecord(
        plot_id=generate_plot_id(SourceKind.AUTHORITATIVE, land_number),
        land_number=land_number,
        area=normalize_area(attrs.get("PROJECT_NAME") or attrs.get("ENTITY_NAME")),
        latitude=location.latitude,
        longitude=location.longitude,
        distance_from_center_m=distance,
        source_kind=SourceKind.AUTHORITATIVE,
        confidence_score=SourceKind.AUTHORITATIVE.confidence,
        geometry=geometry,
        attributes=attributes,
    )


class GisDdaClient:
    """Polygon spatial query against the DDA land-base MapServer layer."""

    source = SourceKind.AUTHORITATIVE

    def __init__(
        self,
        base_url: str | None = None,
        layer_id: int | None = None,
        result_limit: int | None = None,
    ) -> None:
        self.base_url = (base_url or settings.gis_base_url).rstrip("/")
        self.layer_id = layer_id if layer_id is not None else settings.gis_layer_id
        self.result_limit = result_limit or settings.gis_result_limit

    @property
    def query_url(self) -> str:
        return f"{self.base_url}/{self.layer_id}/query"

    def _params(self, center: GeoPoint, radius_m: float) -> dict:
        return {
            "where": "1=1",
            "geometry": f"{center.longitude},{center.latitude}",
            "geometryType": "esriGeometryPoint",
            "spatialRel": "esriSpatialRelIntersects",
            "inSR": "4326",
            "distance": str(radius_m),
            "units": "esriSRUnit_Meter",
            "outFields": "*",
            "returnGeometry": "true",
            "outSR": "4326",
            "f": "json",
            "resultRecordCount": str(self.result_limit),
        }

    @trace(name="query_gis_dda", span_type="TOOL")
    async def query(self, center: GeoPoint, radius_m: float) -> list[PlotRecord]:
        """Return plots whose centroid lies within radius * 1.1 of center.

        Raises:
            SourceUnavailable: HTTP failure or an ArcGIS error payload. Malformed
                features are skipped one at a time.
        """
        with start_span(name="arcgis_query", span_type="TOOL") as span:
            span.set_inputs({"url": self.query_url, "radius_m": radius_m})
            try:
                async with httpx.AsyncClient(timeout=20.0) as client:
                    resp = await client.get(
                        self.query_url,
                        params=self._params(center, radius_m),
                        headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                    )
                    resp.raise_for_status()
                    data = resp.json()
            except httpx.HTTPStatusError as e:
                raise SourceUnavailable(self.source.value, f"GIS/DDA HTTP {e.response.status_code}") from e
            except httpx.HTTPError as e:
                raise SourceUnavailable(self.source.value, f"GIS/DDA request failed: {e}") from e
            except ValueError as e:
                raise SourceUnavailable(self.source.value, "GIS/DDA returned invalid JSON") from e

            if not isinstance(data, dict):
                raise SourceUnavailable(self.source.value, "GIS/DDA returned a non-object payload")
            if data.get("error"):
                err = data["error"]
                message = err.get("message") if isinstance(err, dict) else None
                raise SourceUnavailable(self.source.value, message or str(err))

            features = data.get("features") or []
            records = []
            for feature in features:
                try:
                    rec = feature_to_record(feature, center, radius_m)
                except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
                    logger.warning("Skipping malformed GIS feature: %s", e, extra={"source": self.source.value})
                    continue
                if rec is not None:
                    records.append(rec)
            span.set_outputs({"feature_count": len(features), "plot_count": len(records)})

        logger.info("GIS/DDA: %d plot(s) from %d feature(s)", len(records), len(features),
                    extra={"source": self.source.value})
        return records
