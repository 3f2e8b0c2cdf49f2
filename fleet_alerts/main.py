"""Fleet alerts FastAPI application."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fleet_alerts.config import settings, validate_settings
from fleet_alerts.database import close_database
from fleet_alerts.logging_config import get_logger, setup_logging
from fleet_alerts.middleware import CorrelationIdMiddleware
from fleet_alerts.routers import admin, alerts, dashboard, health
from fleet_alerts.services.rule_loader import get_rule_registry
from fleet_alerts.services.scheduler import start_scheduler, stop_scheduler

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    # Note: Migrations are run by `alembic upgrade head` before uvicorn starts
    validate_settings()

    # A missing or unreadable rule file is fatal
    get_rule_registry().reload()

    start_scheduler()
    logger.info("Fleet alerts API started")

    yield

    # Shutdown
    logger.info("Shutting down fleet alerts API...")
    stop_scheduler()
    await close_database()
    logger.info("Fleet alerts API shutdown complete")


app = FastAPI(
    title="Fleet Alerts API",
    description="Alert escalation and auto-closure for fleet monitoring",
    version="0.1.0",
    lifespan=lifespan,
)

# Middleware (order matters: first added = last executed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health.router)
app.include_router(alerts.router)
app.include_router(admin.router)
app.include_router(dashboard.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "Fleet Alerts API",
        "version": "0.1.0",
        "docs": "/docs",
    }
