"""Health check endpoints for container orchestration."""

from typing import Any

from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse

from fleet_alerts.database import check_database_connection
from fleet_alerts.services.rule_loader import get_rule_registry
from fleet_alerts.services.scheduler import get_auto_close_sweep

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=None)
async def health_check() -> Response:
    """
    Health check endpoint with database and rule status.

    Returns:
        200 with "healthy" when the database is reachable,
        503 with "degraded" otherwise.
    """
    db_connected = await check_database_connection()
    rules = get_rule_registry().current

    content = {
        "status": "healthy" if db_connected else "degraded",
        "database": "connected" if db_connected else "disconnected",
        "rules_loaded": len(rules),
        "auto_close_running": get_auto_close_sweep().is_running,
    }
    return JSONResponse(
        status_code=(
            status.HTTP_200_OK
            if db_connected
            else status.HTTP_503_SERVICE_UNAVAILABLE
        ),
        content=content,
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """
    Liveness probe.

    Succeeds while the process is running; checks no dependencies.
    """
    return {"status": "alive"}


@router.get("/health/ready", response_model=None)
async def readiness_probe() -> Response:
    """
    Readiness probe.

    Ready once the database is reachable and a rule file has been loaded.
    """
    db_connected = await check_database_connection()
    rules_loaded = get_rule_registry().is_loaded

    if db_connected and rules_loaded:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={
                "status": "ready",
                "database": "connected",
                "rules": "loaded",
            },
        )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "not_ready",
            "database": "connected" if db_connected else "disconnected",
            "rules": "loaded" if rules_loaded else "not_loaded",
        },
    )
