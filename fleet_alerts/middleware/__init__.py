"""Middleware package for the fleet alerts API."""

from fleet_alerts.middleware.correlation import (
    CORRELATION_ID_HEADER,
    CorrelationIdMiddleware,
)

__all__ = ["CorrelationIdMiddleware", "CORRELATION_ID_HEADER"]
