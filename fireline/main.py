"""
Fireline region service — application entry point.

Serves the remote surface the map client syncs against:
  /api/regions             — per-email subscription regions
  /api/regional_fire_risk  — top risk points
  /health                  — region store and risk source status

Run:
  uvicorn fireline.main:app --port 4000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from fireline.core.bootstrap import initialize
from fireline.core.config import settings
from fireline.core.database import close_mongo_connection, connect_to_mongo
from fireline.core.rate_limit import limiter
from fireline.routes.health import router as health_router
from fireline.routes.regions import router as regions_router
from fireline.routes.risk import router as risk_router

logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Code before `yield` runs on startup; code after runs on shutdown."""
    initialize()
    logger.info("Starting Fireline region service (env: %s)", settings.environment)
    await connect_to_mongo()
    yield
    logger.info("Shutting down Fireline region service")
    await close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Fireline Region Service",
    description="Wildfire subscription regions and regional fire risk points.",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)

# ─── Rate limiting ─────────────────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(regions_router)
app.include_router(risk_router)


@app.get("/", tags=["root"])
async def root():
    """Service root — basic metadata."""
    return {
        "name": "Fireline Region Service",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
