"""plotmatch API — FastAPI application for land matching.

Run:
    uvicorn plotmatch.api.main:app --reload
    # or
    plotmatch-api
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from plotmatch.api.routes import router
from plotmatch.config import settings
from plotmatch.observability.logging import bind_correlation_id, setup_logging
from plotmatch.observability.tracing import configure_tracing
from plotmatch.pipeline.lookup import build_service
from plotmatch.storage.db import dispose_engine, get_session, init_db

logger = logging.getLogger(__name__)

DB_INIT_TIMEOUT_S = 15


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize DB and the service on startup, drain background writes on shutdown."""
    setup_logging(json_format=settings.log_json, level=settings.log_level)
    configure_tracing(settings.mlflow_tracking_uri, settings.mlflow_experiment_name)

    parsed = urlparse(settings.database_url)
    redacted_host = f"{parsed.hostname}:{parsed.port}" if parsed.port else parsed.hostname
    logger.info("Connecting to database at %s/%s", redacted_host, parsed.path.lstrip("/"))
    try:
        await asyncio.wait_for(init_db(), timeout=DB_INIT_TIMEOUT_S)
    except asyncio.TimeoutError:
        logger.error("Database initialization timed out after %ds — API will start in degraded mode",
                     DB_INIT_TIMEOUT_S)
    except Exception as e:
        logger.error("Database initialization failed: %s — API will start in degraded mode", e)

    if getattr(app.state, "land_matching", None) is None:
        app.state.land_matching = build_service()
    logger.info("plotmatch API ready")
    yield
    logger.info("Shutting down")
    await app.state.land_matching.cache.wait_pending()
    await dispose_engine()


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Set correlation ID from X-Request-ID header or generate a new one."""

    async def dispatch(self, request: Request, call_next):
        with bind_correlation_id(request.headers.get("x-request-id")) as cid:
            response = await call_next(request)
        response.headers["x-request-id"] = cid
        return response


def _first_error(exc: RequestValidationError) -> str:
    """'latitude: Input should be less than or equal to 90'"""
    errors = exc.errors()
    if not errors:
        return "body: invalid request"
    err = errors[0]
    fields = [str(part) for part in err.get("loc", ()) if part != "body"]
    field = ".".join(fields) or "body"
    return f"{field}: {err.get('msg', 'invalid value')}"


app = FastAPI(
    title="plotmatch",
    description="Land-matching lookup: merges the DDA GIS land base with property status "
    "records and caches the result.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = _first_error(exc)
    logger.info("Rejected request: %s", message)
    return JSONResponse(status_code=400, content={"success": False, "error": message})


@app.get("/health")
async def health(request: Request):
    """Health check — database connectivity and memory cache occupancy."""
    checks: dict = {}

    session = None
    try:
        session = await get_session()
        await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"
    finally:
        if session:
            await session.close()

    service = getattr(request.app.state, "land_matching", None)
    if service is not None:
        checks["memory_cache"] = {
            "entries": len(service.cache.memory),
            "capacity": service.cache.memory.capacity,
        }

    status = "healthy" if checks.get("database") == "ok" else "degraded"
    return {"status": status, "checks": checks}


def run():
    """Entry point for plotmatch-api console script."""
    uvicorn.run("plotmatch.api.main:app", host="0.0.0.0", port=8000, reload=True)
