"""Correlation ID middleware.

Pure ASGI middleware that takes the caller's ``X-Correlation-ID`` (or
generates one), exposes it to log records through ``correlation_id_ctx``
and echoes it on the response.
"""

import re
import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from fleet_alerts.logging_config import correlation_id_ctx, get_logger

logger = get_logger(__name__)

# Header name for correlation ID
CORRELATION_ID_HEADER = "X-Correlation-ID"

# Upstream ids end up in every log line; anything else is replaced
_VALID_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

# Probes hit these every few seconds
_QUIET_PATHS = frozenset({"/health", "/health/live", "/health/ready"})


def _correlation_id_from(scope: Scope) -> str:
    for name, value in scope.get("headers", []):
        if name == b"x-correlation-id":
            candidate = value.decode("latin-1")
            if _VALID_CORRELATION_ID.match(candidate):
                return candidate
            break
    return str(uuid.uuid4())


class CorrelationIdMiddleware:
    """Tags every HTTP request with a correlation id and logs its outcome."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        correlation_id = _correlation_id_from(scope)
        token = correlation_id_ctx.set(correlation_id)

        method = scope.get("method", "")
        path = scope.get("path", "")
        quiet = path in _QUIET_PATHS
        start_time = time.perf_counter()
        status_code: int | None = None

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code

            if message["type"] == "http.response.start":
                status_code = message.get("status")
                headers = list(message.get("headers", []))
                headers.append(
                    (CORRELATION_ID_HEADER.lower().encode(), correlation_id.encode())
                )
                message = {**message, "headers": headers}

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
            if not quiet:
                logger.info(
                    "Request completed",
                    method=method,
                    path=path,
                    status_code=status_code,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
        except Exception:
            logger.exception(
                "Request failed",
                method=method,
                path=path,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise
        finally:
            correlation_id_ctx.reset(token)
