"""Tests for the Property Status (fallback) client."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from plotmatch.core.errors import SourceUnavailable
from plotmatch.core.types import GeoPoint, SourceKind
from plotmatch.retrieval.status import PropertyStatusClient, row_to_record

CENTER = GeoPoint(25.0657, 55.1713)


def _row(**kwargs) -> dict:
    row = {
        "land_number": "344-0123",
        "area": "majan",
        "latitude": 25.0687,
        "longitude": 55.1713,
        "distance_m": 333.6,
        "land_status": "Freehold",
        "certificate_number": "CERT-2019-0042",
        "property_type": "Land",
    }
    row.update(kwargs)
    return row


def _session_with_rows(rows):
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows
    session = AsyncMock()
    session.execute.return_value = result
    return session


class TestRowToRecord:
    def test_maps_fields(self):
        rec = row_to_record(_row())
        assert rec.plot_id == "DLD-D86FD36B"
        assert rec.area == "Wadi Al Safa 3"
        assert rec.distance_from_center_m == 334.0
        assert rec.land_status == "Freehold"
        assert rec.land_status_source == "Property Status / GIS"
        assert rec.last_certificate_no == "CERT-2019-0042"
        assert rec.source_kind is SourceKind.FALLBACK
        assert rec.confidence_score == 0.65

    def test_no_status_no_status_source(self):
        rec = row_to_record(_row(land_status=None))
        assert rec.land_status is None
        assert rec.land_status_source is None


class TestPropertyStatusClient:
    @pytest.mark.asyncio
    async def test_query_filters_by_tolerance(self):
        rows = [_row(), _row(land_number="far", distance_m=600.0)]
        session = _session_with_rows(rows)
        client = PropertyStatusClient(session_factory=AsyncMock(return_value=session))

        records = await client.query(CENTER, 500)

        assert [r.land_number for r in records] == ["344-0123"]
        params = session.execute.call_args.args[1]
        assert params == {"center_lat": 25.0657, "center_lng": 55.1713, "radius_meters": 500}
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_database_error_is_source_unavailable(self):
        session = AsyncMock()
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("timeout"))
        client = PropertyStatusClient(session_factory=AsyncMock(return_value=session))

        with pytest.raises(SourceUnavailable) as exc_info:
            await client.query(CENTER, 500)

        assert exc_info.value.source == "Property Status / GIS"
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_malformed_row_skipped_others_kept(self, caplog):
        rows = [_row(), _row(land_number="597-100", latitude=None)]
        client = PropertyStatusClient(session_factory=AsyncMock(return_value=_session_with_rows(rows)))

        with caplog.at_level("WARNING", logger="plotmatch.retrieval.status"):
            records = await client.query(CENTER, 500)

        assert [r.land_number for r in records] == ["344-0123"]
        assert "Skipping malformed status row" in caplog.text
