"""Shared fixtures: a local target server and deterministic payload pools."""

import asyncio
import random

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from waf_tester.core.models import TestConfig
from waf_tester.core.payloads import PayloadPool
from waf_tester.core.session import SessionCoordinator


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: Tests that take several seconds of wall-clock time")


@pytest.fixture
def payload_pool():
    """Single-entry pools so injected content is predictable."""
    return PayloadPool(
        {
            "sql": ["' OR 1=1--"],
            "xss": ["<script>alert(1)</script>"],
            "traversal": ["../../etc/passwd"],
            "command": ["; ls"],
            "scanner": ["sqlmap/1.0"],
            "legitimate": ["Mozilla/5.0 TestBrowser"],
        },
        rng=random.Random(1234),
    )


def _build_target_app() -> web.Application:
    state = {"hits": 0, "seen": []}

    async def ok(request):
        return web.Response(text="ok")

    async def echo(request):
        body = await request.text()
        state["seen"].append(request)
        return web.json_response(
            {
                "method": request.method,
                "path": request.path,
                "query": request.query_string,
                "headers": dict(request.headers),
                "body": body,
            }
        )

    async def status(request):
        return web.Response(status=int(request.match_info["code"]), text="status")

    async def limited(request):
        # Allows two requests, then starts rejecting
        state["hits"] += 1
        if state["hits"] > 2:
            return web.Response(status=429, text="Too Many Requests")
        return web.Response(text="ok")

    async def big(request):
        return web.Response(text="x" * 1200)

    async def multi_header(request):
        response = web.Response(text="ok")
        response.headers.add("X-Multi", "a")
        response.headers.add("X-Multi", "b")
        return response

    async def slow(request):
        await asyncio.sleep(2)
        return web.Response(text="late")

    app = web.Application()
    app["state"] = state
    app.router.add_route("*", "/ok", ok)
    app.router.add_route("*", "/echo", echo)
    app.router.add_route("*", "/status/{code}", status)
    app.router.add_route("*", "/limited", limited)
    app.router.add_get("/big", big)
    app.router.add_get("/multi", multi_header)
    app.router.add_get("/slow", slow)
    return app


@pytest.fixture
async def target_server():
    """A local HTTP server acting as the system under test."""
    server = TestServer(_build_target_app())
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
def target_url(target_server):
    def make(path: str) -> str:
        return str(target_server.make_url(path))

    return make


@pytest.fixture
def coordinator(payload_pool):
    return SessionCoordinator(payload_pool, batch_interval=0.2)


@pytest.fixture
def make_config():
    def make(url: str, **overrides) -> TestConfig:
        values = dict(target_url=url, total_requests=5, duration=1)
        values.update(overrides)
        return TestConfig(**values)

    return make
