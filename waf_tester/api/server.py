"""HTTP API exposing tests as JSON and server-sent event streams."""

import json
import logging
from aiohttp import web
from typing import Optional

from ..core.models import ConfigError, FinalResult, TestConfig
from ..core.session import SessionCoordinator
from ..results.exporter import (
    DEFAULT_EXPORTS_DIR,
    EXPORT_FORMATS,
    export_results,
    get_export_path,
    list_exports,
)

COORDINATOR_KEY = web.AppKey("coordinator", SessionCoordinator)
EXPORTS_DIR_KEY = web.AppKey("exports_dir", str)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

logger = logging.getLogger(__name__)


@web.middleware
async def cors_middleware(request: web.Request, handler):
    """Attach CORS headers to every API response, errors included."""
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(CORS_HEADERS)
        raise
    if not response.prepared:
        response.headers.update(CORS_HEADERS)
    return response


async def _read_json(request: web.Request):
    try:
        return await request.json()
    except ValueError as e:
        raise web.HTTPBadRequest(text=f"Invalid JSON: {e}")


async def _read_config(request: web.Request) -> TestConfig:
    """Parse and validate the test config in the request body."""
    data = await _read_json(request)
    try:
        config = TestConfig.from_dict(data)
        config.validate()
    except ConfigError as e:
        raise web.HTTPBadRequest(text=str(e))
    return config


async def handle_options(request: web.Request) -> web.Response:
    return web.Response(status=200)


async def handle_start_test(request: web.Request) -> web.Response:
    """Run a test to completion and return the final result."""
    config = await _read_config(request)
    coordinator = request.app[COORDINATOR_KEY]

    result = await coordinator.run_test(config)
    if result is None:
        raise web.HTTPConflict(text="Test was cancelled before completion")

    return web.json_response(
        result.to_dict(), dumps=lambda obj: json.dumps(obj, indent=2)
    )


async def handle_start_test_stream(request: web.Request) -> web.StreamResponse:
    """Run a test and stream its progress as server-sent events."""
    config = await _read_config(request)
    coordinator = request.app[COORDINATOR_KEY]

    session = await coordinator.start_streaming_session(config)

    response = web.StreamResponse(
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            **CORS_HEADERS,
        }
    )
    events = session.events()
    try:
        await response.prepare(request)
        async for event in events:
            try:
                payload = json.dumps(event.to_dict())
            except (TypeError, ValueError) as e:
                logger.warning(f"[{session.test_id}] Skipping unencodable event: {e}")
                continue

            try:
                await response.write(f"data: {payload}\n\n".encode("utf-8"))
            except (ConnectionResetError, RuntimeError):
                logger.info(f"[{session.test_id}] Client disconnected, cancelling test")
                session.cancel()
                break
    finally:
        await events.aclose()
        # events() never ran its cleanup if the stream failed to start
        await session.close()

    try:
        await response.write_eof()
    except ConnectionResetError:
        logger.debug(f"[{session.test_id}] Connection closed before end of stream")
    return response


async def handle_stop_test(request: web.Request) -> web.Response:
    """Cancel a running streaming test by id."""
    data = await _read_json(request)
    test_id = data.get("test_id", "") if isinstance(data, dict) else ""

    coordinator = request.app[COORDINATOR_KEY]
    if not await coordinator.cancel_session(test_id):
        raise web.HTTPNotFound(text="Test not found or already completed")

    return web.json_response({"status": "cancelled", "test_id": test_id})


async def handle_export(request: web.Request) -> web.Response:
    """Write a finished result to the exports directory."""
    data = await _read_json(request)
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(text="Request body must be a JSON object")

    fmt = data.get("format")
    if fmt not in EXPORT_FORMATS:
        raise web.HTTPBadRequest(text="format must be 'json' or 'csv'")

    try:
        config = TestConfig.from_dict(data.get("config") or {})
        result = FinalResult.from_dict(data.get("results") or {})
    except (ConfigError, TypeError, ValueError) as e:
        raise web.HTTPBadRequest(text=f"Invalid export data: {e}")

    try:
        filename = export_results(config, result, fmt, request.app[EXPORTS_DIR_KEY])
    except OSError as e:
        raise web.HTTPInternalServerError(text=f"Export failed: {e}")

    return web.json_response(
        {
            "status": "success",
            "filename": filename,
            "message": f"Results exported to {filename}",
        }
    )


async def handle_list_exports(request: web.Request) -> web.Response:
    exports_dir = request.app[EXPORTS_DIR_KEY]
    try:
        exports = list_exports(exports_dir)
    except OSError as e:
        raise web.HTTPInternalServerError(text=f"Failed to list exports: {e}")

    return web.json_response(
        {
            "exports": exports,
            "count": len(exports),
            "export_path": get_export_path(exports_dir),
        }
    )


def create_app(
    coordinator: Optional[SessionCoordinator] = None,
    exports_dir: str = DEFAULT_EXPORTS_DIR,
) -> web.Application:
    """Build the API application."""
    app = web.Application(middlewares=[cors_middleware])
    app[COORDINATOR_KEY] = coordinator or SessionCoordinator()
    app[EXPORTS_DIR_KEY] = exports_dir

    app.router.add_post("/api/test/start", handle_start_test)
    app.router.add_post("/api/test/stream", handle_start_test_stream)
    app.router.add_post("/api/test/stop", handle_stop_test)
    app.router.add_post("/api/test/export", handle_export)
    app.router.add_get("/api/exports/list", handle_list_exports)
    app.router.add_route("OPTIONS", "/api/{tail:.*}", handle_options)
    return app
