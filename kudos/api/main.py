"""
kudos.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn kudos.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from kudos import __version__  # noqa: E402
from kudos.api.deps import get_engine  # noqa: E402
from kudos.api.routes.public import router as public_router  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = app.dependency_overrides.get(get_engine, get_engine)()
    logger.info("Kudos API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Kudos API shutting down")


app = FastAPI(
    title="Kudos Points API",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(public_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
