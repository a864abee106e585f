"""FastAPI application for the profile analysis service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from profile_analysis.web.deps import close_clients, get_config
from profile_analysis.web.routers.analysis import router as analysis_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown: validate config, close HTTP clients and cache."""
    logger.info("Starting profile analysis API...")
    get_config()
    yield
    await close_clients()
    logger.info("Profile analysis API shut down.")


app = FastAPI(
    title="Profile Analysis API",
    description="Partnership-fit scoring for social profiles, single and bulk",
    lifespan=lifespan,
)

app.include_router(analysis_router, prefix="/v1")


@app.get("/health")
async def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
