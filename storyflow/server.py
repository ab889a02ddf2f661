"""HTTP compile service.

Endpoints:
    POST /compile  — StoryFlow text (raw body or JSON ``story``) → script, forms, BPMN
    POST /bpmn     — same input → BPMN XML body
    GET  /health   — Liveness check

JSON bodies may be a full narrative result bundle; only ``story`` is compiled.
"""

from __future__ import annotations

import asyncio
import json
import logging

from aiohttp import web

from .compiler import CompileResult
from .config import AppConfig
from .errors import FlowSyntaxError, GraphError, LayoutError, StoryFlowError
from .narrative import BundleError, StoryResult, compile_bundle

logger = logging.getLogger(__name__)


def _status_for(exc: StoryFlowError) -> int:
    if isinstance(exc, (FlowSyntaxError, BundleError)):
        return 400
    if isinstance(exc, GraphError):
        return 422
    if isinstance(exc, LayoutError):
        return 500
    return 400


class CompileServer:
    """HTTP server that compiles StoryFlow documents on request."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._app = web.Application(client_max_size=config.server.max_body_bytes)
        self._app.router.add_post('/compile', self._handle_compile)
        self._app.router.add_post('/bpmn', self._handle_bpmn)
        self._app.router.add_get('/health', self._handle_health)
        self._runner: web.AppRunner | None = None

    # ── Lifecycle ─────────────────────────────────────────

    async def start(self) -> None:
        """Start the HTTP server and block until cancelled."""
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(
            self._runner,
            self._config.server.host,
            self._config.server.port,
        )
        await site.start()
        logger.info(
            "Compile server listening on %s:%d",
            self._config.server.host,
            self._config.server.port,
        )
        try:
            while True:
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Gracefully shutdown the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Compile server stopped")

    # ── Health check ──────────────────────────────────────

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    # ── Compilation ───────────────────────────────────────

    async def _read_bundle(self, request: web.Request) -> StoryResult:
        """Accept raw StoryFlow text or a JSON object carrying ``story``."""
        if request.content_length and request.content_length > self._config.server.max_body_bytes:
            raise web.HTTPRequestEntityTooLarge(
                max_size=self._config.server.max_body_bytes,
                actual_size=request.content_length,
            )
        body = await request.read()
        text = body.decode('utf-8', errors='replace')

        if request.content_type == 'application/json':
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                raise BundleError('Invalid JSON') from None
            return StoryResult.from_dict(payload)

        if not text.strip():
            raise BundleError('Empty request body')
        return StoryResult(story=text)

    async def _compile(self, request: web.Request) -> CompileResult | web.Response:
        try:
            bundle = await self._read_bundle(request)
            result = compile_bundle(bundle, self._config)
            # Layout failures surface here; the document is cached for the response.
            result.bpmn()
        except StoryFlowError as exc:
            status = _status_for(exc)
            logger.warning("Rejected document (%d): %s", status, exc)
            return web.json_response(exc.to_dict(), status=status)
        logger.info(
            "Compiled flow %r: %d states, %d warnings",
            result.graph.name, len(result.graph), len(result.warnings),
        )
        return result

    async def _handle_compile(self, request: web.Request) -> web.Response:
        result = await self._compile(request)
        if isinstance(result, web.Response):
            return result
        return web.json_response(result.to_dict())

    async def _handle_bpmn(self, request: web.Request) -> web.Response:
        result = await self._compile(request)
        if isinstance(result, web.Response):
            return result
        return web.Response(text=result.bpmn(), content_type='application/xml')
