"""Thin MLflow tracing helpers for source queries and consolidation.

Usage:

    from plotmatch.observability.tracing import trace, start_span

    @trace(name="query_gis", span_type="TOOL")
    async def query(...): ...

    with start_span("consolidate", span_type="CHAIN") as span:
        span.set_inputs({...})
"""

import logging
from contextlib import contextmanager

import mlflow

logger = logging.getLogger(__name__)


def trace(name: str | None = None, **kwargs):
    """Decorator: wraps a sync or async function in an MLflow trace."""
    return mlflow.trace(name=name, **kwargs) if name else mlflow.trace(**kwargs)


@contextmanager
def start_span(name: str = "span", **kwargs):
    """Context manager yielding an MLflow span."""
    with mlflow.start_span(name=name, **kwargs) as span:
        yield span


def configure_tracing(tracking_uri: str, experiment_name: str) -> None:
    """Point MLflow at the tracking store; failures leave tracing local."""
    try:
        mlflow.set_tracking_uri(tracking_uri)
        mlflow.set_experiment(experiment_name)
        mlflow.config.enable_async_logging()
        logger.info("MLflow tracing enabled: %s", tracking_uri)
    except Exception as e:
        logger.warning("MLflow tracking setup failed: %s — traces stay local", e)
