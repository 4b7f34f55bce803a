# =============================================================================
# tests/test_web_server.py - Web Mode Tests
# =============================================================================
# This module contains tests for:
# - Starting the sample application in web mode on a free port
# - Built-in, module and static routes over real HTTP
# - Shutting the server down in destroy()
# =============================================================================

import asyncio
import json
import socket

import httpx
import pytest
import pytest_asyncio
import websockets
from fastapi import FastAPI

from apphost.core.application import Application, AppStatus
from apphost.core.modules import ModuleRegistry
from apphost.exceptions import ServerStartError
from apphost.web.server import WebServer
from apphost.web.websocket import register_realtime_bridge


@pytest_asyncio.fixture
async def web_app(app_dir, fake_mongo):
    app = Application(app_dir, {"mode": "web", "host": "127.0.0.1", "port": 0}, handle_signals=False)
    await app.init()
    yield app
    await app.destroy()


def base_url(app):
    return f"http://127.0.0.1:{app.server.port}"


class TestWebMode:
    """Test the sample application served over HTTP."""

    @pytest.mark.asyncio
    async def test_server_is_listening(self, web_app):
        assert web_app.status == AppStatus.ACTIVE
        assert web_app.server.port != 0

        async with httpx.AsyncClient(base_url=base_url(web_app)) as client:
            response = await client.get("/")

        assert response.status_code == 200
        assert response.json() == {
            "name": "sample-shop",
            "version": "2.1.0",
            "description": "Sample shop used by the apphost tests",
        }

    @pytest.mark.asyncio
    async def test_health(self, web_app):
        async with httpx.AsyncClient(base_url=base_url(web_app)) as client:
            health = (await client.get("/health")).json()
            ready = (await client.get("/health/ready")).json()

        assert health["status"] == "active"
        assert health["mode"] == "web"
        assert health["environment"] == "test"
        assert ready["database"] == "ok"

    @pytest.mark.asyncio
    async def test_module_routes(self, web_app):
        async with httpx.AsyncClient(base_url=base_url(web_app)) as client:
            created = await client.post("/catalog/products", json={"title": "Tea", "price": 3.5})
            listed = await client.get("/catalog/products")
            fetched = await client.get(f"/catalog/products/{created.json()['id']}")

        assert created.status_code == 201
        assert created.json()["title"] == "Tea"
        assert [product["title"] for product in listed.json()] == ["Tea"]
        assert fetched.json()["price"] == 3.5

    @pytest.mark.asyncio
    async def test_api_error(self, web_app):
        async with httpx.AsyncClient(base_url=base_url(web_app)) as client:
            response = await client.get("/catalog/products/not-an-id")

        assert response.status_code == 404
        assert response.json() == {"code": "PRODUCT_NOT_FOUND", "detail": {"id": "not-an-id"}}

    @pytest.mark.asyncio
    async def test_static_files(self, web_app):
        async with httpx.AsyncClient(base_url=base_url(web_app)) as client:
            response = await client.get("/index.html")

        assert response.status_code == 200
        assert "Sample shop" in response.text

    @pytest.mark.asyncio
    async def test_openapi_has_api_key_scheme(self, web_app):
        async with httpx.AsyncClient(base_url=base_url(web_app)) as client:
            schema = (await client.get("/openapi.json")).json()

        assert schema["info"]["title"] == "sample-shop API"
        assert schema["components"]["securitySchemes"]["APIKeyInHeader"]["name"] == "X-API-Key"
        assert "/catalog/products" in schema["paths"]

    @pytest.mark.asyncio
    async def test_destroy_stops_the_server(self, app_dir, fake_mongo):
        app = Application(app_dir, {"mode": "web", "host": "127.0.0.1", "port": 0}, handle_signals=False)
        await app.init()
        url = base_url(app)
        bridge = app.server.io

        await app.destroy()

        assert app.server is None
        assert app.web is None
        assert bridge.manager.closed is True
        async with httpx.AsyncClient(base_url=url) as client:
            with pytest.raises(httpx.ConnectError):
                await client.get("/health")

    @pytest.mark.asyncio
    async def test_destroy_with_open_socket(self, app_dir, fake_mongo):
        """Test that a connected realtime client does not hold the server open."""
        app = Application(app_dir, {"mode": "web", "host": "127.0.0.1", "port": 0}, handle_signals=False)
        await app.init()

        async with websockets.connect(f"ws://127.0.0.1:{app.server.port}/ws") as ws:
            assert json.loads(await ws.recv())["event"] == "connected"

            await asyncio.wait_for(app.destroy(), 5)

            with pytest.raises(websockets.ConnectionClosed) as exc_info:
                await ws.recv()

        assert exc_info.value.rcvd.code == 1001
        assert app.status == AppStatus.STOPPED

    @pytest.mark.asyncio
    async def test_router_failure_closes_the_bridge(self, app_dir, fake_mongo):
        def broken_router(app):
            raise RuntimeError("no routes")

        registry = ModuleRegistry().add_module("reports", router=broken_router)
        app = Application(
            app_dir,
            {"mode": "web", "host": "127.0.0.1", "port": 0},
            registry=registry,
            handle_signals=False,
        )

        with pytest.raises(RuntimeError):
            await app.init()
        bridge = app.web.state.io

        assert app.server is None
        assert bridge.client.is_closed
        assert bridge.manager.closed is True

        await app.destroy()
        assert app.web is None


class TestWebServer:
    """Test WebServer on its own."""

    @pytest.mark.asyncio
    async def test_port_in_use(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen()
        port = blocker.getsockname()[1]

        web = FastAPI()
        server = WebServer(web, "127.0.0.1", port, io=register_realtime_bridge(web))

        try:
            with pytest.raises(ServerStartError) as exc_info:
                await server.start()
        finally:
            blocker.close()

        assert exc_info.value.details["port"] == port

    @pytest.mark.asyncio
    async def test_close_before_start_is_a_no_op(self):
        web = FastAPI()
        server = WebServer(web, "127.0.0.1", 0, io=register_realtime_bridge(web))

        await server.close()

        assert server.port == 0
