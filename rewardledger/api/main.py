"""
rewardledger.api.main — FastAPI application entry point
========================================================

Run with::

    uvicorn rewardledger.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from rewardledger.api.deps import get_cache, get_engine  # noqa: E402
from rewardledger.api.routes.admin import router as admin_router  # noqa: E402
from rewardledger.api.routes.rewards import router as rewards_router  # noqa: E402
from rewardledger.database.engine import run_db  # noqa: E402

logger = logging.getLogger(__name__)


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
    """Startup/shutdown lifecycle — warm the DB engine and reward catalog."""
    engine = get_engine()
    await run_db(get_cache(engine).load_all)
    logger.info("Reward API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Reward API shutting down")


app = FastAPI(
    title="Reward Ledger API",
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

# Mount routers
app.include_router(rewards_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
