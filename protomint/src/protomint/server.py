"""
HTTP API for the mint pipeline.

Every route is served both at the root and under ``/api``. The web front-end
also calls ``/api/alkanes/execute``, which is an alias of the execute route.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web
from loguru import logger
from pydantic import BaseModel, ValidationError

from protomint.config import Settings
from protomint.errors import InvalidRequestError, ProtomintError
from protomint.models import BroadcastRequest, ExecuteRequest
from protomint.pipeline import MintPipeline

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

ROUTE_PREFIXES = ("", "/api")


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ProtomintError as e:
        body = e.to_dict()
        if e.http_status >= 500:
            body.setdefault("details", str(e))
            logger.error(f"{request.method} {request.path} failed: {e}")
        else:
            logger.warning(f"{request.method} {request.path} rejected: {e}")
        return web.json_response(body, status=e.http_status)
    except Exception as e:
        logger.exception(f"Unexpected error handling {request.method} {request.path}: {e}")
        return web.json_response({"error": "Unknown error"}, status=500)


def cors_middleware(origin: str) -> Any:
    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response: web.StreamResponse = web.Response(status=204)
        else:
            response = await handler(request)
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    return middleware


async def _parse_body(request: web.Request, model: type[BaseModel]) -> Any:
    try:
        data = await request.json()
    except ValueError as e:
        raise InvalidRequestError("Request body must be valid JSON") from e
    if not isinstance(data, dict):
        raise InvalidRequestError("Request body must be a JSON object")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise InvalidRequestError(f"Invalid {location}: {first['msg']}") from e


class MintServer:
    def __init__(self, settings: Settings, pipeline: MintPipeline) -> None:
        self.settings = settings
        self.pipeline = pipeline
        self.app = web.Application(
            middlewares=[cors_middleware(settings.cors_origin), error_middleware]
        )
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None
        self._stopping = False
        self._setup_routes()
        self.app.on_cleanup.append(self._on_cleanup)

    def _setup_routes(self) -> None:
        for prefix in ROUTE_PREFIXES:
            self.app.router.add_post(f"{prefix}/protocol/execute", self._handle_execute)
            self.app.router.add_get(f"{prefix}/utxos/{{address}}", self._handle_utxos)
            self.app.router.add_get(f"{prefix}/balance/{{address}}", self._handle_balance)
            self.app.router.add_post(f"{prefix}/broadcast", self._handle_broadcast)
            self.app.router.add_get(f"{prefix}/health", self._handle_health)
        self.app.router.add_post("/api/alkanes/execute", self._handle_execute)

    async def _handle_execute(self, request: web.Request) -> web.Response:
        body: ExecuteRequest = await _parse_body(request, ExecuteRequest)
        result = await self.pipeline.execute(body)
        return web.json_response(result)

    async def _handle_utxos(self, request: web.Request) -> web.Response:
        result = await self.pipeline.utxos(request.match_info["address"])
        return web.json_response(result)

    async def _handle_balance(self, request: web.Request) -> web.Response:
        result = await self.pipeline.balance(request.match_info["address"])
        return web.json_response(result)

    async def _handle_broadcast(self, request: web.Request) -> web.Response:
        body: BroadcastRequest = await _parse_body(request, BroadcastRequest)
        result = await self.pipeline.broadcast(body)
        return web.json_response(result)

    async def _handle_health(self, _request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "healthy",
                "network": self.settings.network,
                "encoder": self.pipeline.encoder.name,
            }
        )

    async def _on_cleanup(self, _app: web.Application) -> None:
        await self.pipeline.close()

    async def start(self) -> None:
        logger.info(f"Starting mint server on {self.settings.http_host}:{self.settings.http_port}")

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.settings.http_host, self.settings.http_port)
        await self.site.start()

        logger.info(
            f"Mint server running at http://{self.settings.http_host}:{self.settings.http_port}"
        )

    async def stop(self) -> None:
        if self._stopping:
            return
        self._stopping = True

        logger.info("Stopping mint server...")

        if self.site:
            with contextlib.suppress(RuntimeError):
                await self.site.stop()
            self.site = None

        if self.runner:
            with contextlib.suppress(RuntimeError):
                await self.runner.cleanup()
            self.runner = None

        logger.info("Mint server stopped")


async def run_server(settings: Settings) -> None:
    logger.info("Starting protomint")
    logger.info(f"Network: {settings.network} ({settings.environment})")
    if settings.mock_broadcast_enabled:
        logger.warning("Mock broadcast enabled: failed broadcasts return placeholder txids")

    pipeline = MintPipeline.from_settings(settings)
    server = MintServer(settings, pipeline)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()

    def shutdown_handler() -> None:
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    try:
        await server.start()
        await stop_event.wait()
    except asyncio.CancelledError:
        logger.info("Server cancelled")
    finally:
        await server.stop()
