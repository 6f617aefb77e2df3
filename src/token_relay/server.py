"""Ephemeral token relay server.

Keeps the OpenAI API key on the server and hands clients a short-lived
Realtime session key:

1. Accepts ``POST /session`` with ``{model, voice}``
2. Requests a session from the upstream sessions endpoint
3. Returns the session object (including ``client_secret.value``)
"""

import argparse
import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path

import aiohttp
from aiohttp import web

from realtime_webrtc.config import RealtimeConfig, RelayConfig
from token_relay.health import setup_health_routes

logger = logging.getLogger(__name__)

HTTP_SESSION_KEY = web.AppKey("http_session", aiohttp.ClientSession)
RELAY_CONFIG_KEY = web.AppKey("relay_config", RelayConfig)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Reflect the caller's origin and allow credentials.

    Requests without an Origin header (curl, native clients) pass through.
    """
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = request.headers.get(
            "Access-Control-Request-Headers", "Content-Type"
        )
    else:
        response = await handler(request)

    origin = request.headers.get("Origin")
    if origin:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Vary"] = "Origin"

    return response


async def create_session(request: web.Request) -> web.Response:
    """Mint an ephemeral Realtime session for the requested model and voice."""
    config = request.app[RELAY_CONFIG_KEY]

    try:
        body = await request.json()
    except ValueError:
        body = None

    model = body.get("model") if isinstance(body, dict) else None
    voice = body.get("voice") if isinstance(body, dict) else None
    if not model or not voice:
        return web.json_response(
            {"error": "Missing required parameters: model and voice"},
            status=400,
        )

    if not config.api_key:
        logger.error("OPENAI_API_KEY is not configured")
        return web.json_response(
            {"error": "Internal server error", "message": "Server API key is not configured"},
            status=500,
        )

    http = request.app[HTTP_SESSION_KEY]
    try:
        async with http.post(
            config.upstream_url,
            json={"model": model, "voice": voice},
            headers={"Authorization": f"Bearer {config.api_key}"},
            timeout=aiohttp.ClientTimeout(total=config.request_timeout_s),
        ) as upstream:
            if upstream.status >= 300:
                logger.warning(
                    "Upstream rejected session request",
                    extra={"status": upstream.status, "model": model},
                )
                try:
                    error_body = await upstream.json(content_type=None)
                except ValueError:
                    error_body = None
                if error_body is None:
                    error_body = {"error": upstream.reason}
                return web.json_response(error_body, status=upstream.status)

            data = await upstream.json(content_type=None)

    except (aiohttp.ClientError, TimeoutError, ValueError) as e:
        logger.error("Session request failed", extra={"error": str(e)})
        return web.json_response(
            {"error": "Internal server error", "message": str(e)},
            status=500,
        )

    logger.info("Session created", extra={"model": model, "voice": voice})
    return web.json_response(data)


def create_app(
    config: RelayConfig, http_session: aiohttp.ClientSession | None = None
) -> web.Application:
    """Build the relay application.

    Args:
        config: Relay configuration
        http_session: Client session for upstream calls (created on startup when omitted)
    """
    app = web.Application(middlewares=[cors_middleware])
    app[RELAY_CONFIG_KEY] = config

    async def http_client_ctx(app: web.Application) -> AsyncIterator[None]:
        if http_session is not None:
            app[HTTP_SESSION_KEY] = http_session
            yield
            return

        async with aiohttp.ClientSession() as session:
            app[HTTP_SESSION_KEY] = session
            yield

    app.cleanup_ctx.append(http_client_ctx)
    app.router.add_post("/session", create_session)
    setup_health_routes(app, api_key_configured=bool(config.api_key))
    return app


async def start_server(config: RealtimeConfig) -> None:
    """Run the relay until cancelled."""
    relay = config.relay
    app = create_app(relay)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, relay.host, relay.port)
    await site.start()

    logger.info(f"Server running at http://{relay.host}:{relay.port}")
    logger.info("To close the server, press Ctrl+C")

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
        logger.info("Relay server stopped")


def main() -> None:
    """Entry point for the token relay."""
    parser = argparse.ArgumentParser(description="Ephemeral token relay for the Realtime API")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs") / "realtime.yaml",
        help="Path to config YAML file (defaults apply if missing)",
    )
    parser.add_argument("--host", type=str, default=None, help="Bind host override")
    parser.add_argument("--port", type=int, default=None, help="Bind port override")
    args = parser.parse_args()

    config = RealtimeConfig.from_yaml_with_defaults(args.config)
    if args.host is not None:
        config.relay.host = args.host
    if args.port is not None:
        config.relay.port = args.port

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(start_server(config))
    except KeyboardInterrupt:
        logger.info("Relay server interrupted")


if __name__ == "__main__":
    main()
