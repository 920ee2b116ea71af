"""
ascent.api.main — FastAPI application entry point
==================================================

Run with::

    uvicorn ascent.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from ascent.api.deps import get_engine  # noqa: E402
from ascent.api.routes.progress import router as progress_router  # noqa: E402
from ascent.services.progress_store import StoreUnavailableError  # noqa: E402

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("Ascent API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Ascent API shutting down")


app = FastAPI(
    title="Ascent Progression API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreUnavailableError)
async def store_unavailable(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    """Progression is temporarily not updated; every operation is safe to retry."""
    notes = getattr(exc, "__notes__", [])
    logger.warning("Store unavailable for %s %s (%s)", request.method, request.url.path, notes)
    return JSONResponse(
        status_code=503,
        content={"detail": "Progress store unavailable, retry shortly"},
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )


# Mount routers
app.include_router(progress_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
