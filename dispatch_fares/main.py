"""
Dispatch Fares — FastAPI Backend
Fare estimation for car cab, bike, car recovery, movers and appointments
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dispatch_fares.config import settings
from dispatch_fares.routers import fares
from dispatch_fares.services.config_store import init_configuration_store, load_active_configuration
from dispatch_fares.services.errors import ConfigurationMissing

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    init_configuration_store(settings)
    logger.info("Dispatch Fares API starting...")
    yield
    # Shutdown
    logger.info("Dispatch Fares API shut down.")


app = FastAPI(
    title="Dispatch Fares API",
    description="Itemized fare computation for the multi-service dispatch platform",
    version="1.0.0",
    lifespan=lifespan,
)

# ── Routers ────────────────────────────────────────────────
app.include_router(fares.router, prefix="/api/fares", tags=["Fares"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "Dispatch Fares API"}


@app.get("/health/config")
async def health_config():
    """Verify a pricing configuration is loaded and report its version."""
    try:
        config = load_active_configuration()
    except ConfigurationMissing as e:
        return {"status": "error", "detail": str(e)}
    return {"status": "ok", "version": config.version, "currency": config.currency}
