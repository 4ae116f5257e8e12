"""Domain errors for the land-matching service."""


class PlotMatchError(Exception):
    """Base class for land-matching failures."""

    error_code = "PLOTMATCH_ERROR"


class SourceUnavailable(PlotMatchError):
    """An upstream provider errored or returned an unusable payload.

    Isolated to one source: the request still succeeds with partial data.
    """

    error_code = "SOURCE_UNAVAILABLE"

    def __init__(self, source: str, message: str) -> None:
        super().__init__(message)
        self.source = source


class CacheIOError(PlotMatchError):
    """Durable cache read or write failed. Callers treat it as a miss."""

    error_code = "CACHE_IO_ERROR"
