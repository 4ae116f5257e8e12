"""Tests for the command-line entry points."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from plotmatch import cli
from plotmatch.core.errors import CacheIOError
from plotmatch.core.types import CacheStats


def _service(get_stats):
    service = MagicMock()
    service.cache.get_stats = get_stats
    return service


class TestParsePoint:
    def test_point_and_radius(self):
        center, radius = cli._parse_point(["25.0657", "55.1713", "500"])
        assert (center.latitude, center.longitude, radius) == (25.0657, 55.1713, 500.0)

    def test_radius_optional(self):
        assert cli._parse_point(["25.0", "55.0"])[1] is None

    @pytest.mark.parametrize("args", [["91", "55"], ["25", "55", "0"], ["north", "55"]])
    def test_invalid(self, args):
        with pytest.raises(ValueError):
            cli._parse_point(args)


class TestStatsMain:
    @pytest.fixture(autouse=True)
    def _quiet_logging(self):
        with patch("plotmatch.cli.setup_logging"):
            yield

    def test_store_down_prints_message(self, capsys):
        service = _service(AsyncMock(side_effect=CacheIOError("cache stats failed: connection refused")))
        dispose = AsyncMock()

        with patch("plotmatch.pipeline.lookup.build_service", return_value=service), \
                patch("plotmatch.storage.db.dispose_engine", dispose):
            with pytest.raises(SystemExit) as exc_info:
                cli.stats_main()

        assert exc_info.value.code == 2
        assert "Cache statistics unavailable: cache stats failed: connection refused" in capsys.readouterr().out
        dispose.assert_awaited_once()

    def test_prints_counts(self, capsys):
        stats = CacheStats(total_cached=3, fresh_count=2, stale_count=1, by_source={"GIS/DDA": 3},
                           by_area={"Wadi Al Safa 3": 3})
        dispose = AsyncMock()

        with patch("plotmatch.pipeline.lookup.build_service", return_value=_service(AsyncMock(return_value=stats))), \
                patch("plotmatch.storage.db.dispose_engine", dispose):
            cli.stats_main()

        out = capsys.readouterr().out
        assert "Cached plots: 3" in out
        assert "Wadi Al Safa 3" in out
