"""Health check endpoints for the token relay.

Provides HTTP liveness/readiness endpoints for load balancers and
container healthchecks.
"""

import logging
import time

from aiohttp import web

logger = logging.getLogger(__name__)


class HealthCheckHandler:
    """Health check handler for the relay.

    Readiness requires a configured upstream API key; liveness only requires
    the process to be serving requests.
    """

    def __init__(self, api_key_configured: bool) -> None:
        self.api_key_configured = api_key_configured
        self.start_time = time.time()

    async def liveness_check(self, request: web.Request) -> web.Response:
        """Return 200 while the service is running."""
        return web.json_response(
            {
                "status": "alive",
                "uptime_seconds": time.time() - self.start_time,
            },
            status=200,
        )

    async def readiness_check(self, request: web.Request) -> web.Response:
        """Return 200 when the relay can mint sessions, 503 otherwise.

        Response format:
        {
            "status": "ready" | "not_ready",
            "uptime_seconds": float,
            "api_key_configured": bool
        }
        """
        ready = self.api_key_configured
        response_data = {
            "status": "ready" if ready else "not_ready",
            "uptime_seconds": time.time() - self.start_time,
            "api_key_configured": ready,
        }

        logger.debug("Readiness check performed", extra={"status": response_data["status"]})
        return web.json_response(response_data, status=200 if ready else 503)


def setup_health_routes(app: web.Application, api_key_configured: bool) -> None:
    """Set up health check routes on application.

    Args:
        app: aiohttp Application instance
        api_key_configured: Whether the upstream API key is available
    """
    handler = HealthCheckHandler(api_key_configured=api_key_configured)

    app.router.add_get("/health", handler.liveness_check)
    app.router.add_get("/readiness", handler.readiness_check)

    logger.info("Health check endpoints configured: /health, /readiness")
