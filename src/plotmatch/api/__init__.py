"""HTTP API — FastAPI app and land-matching routes."""
