"""
Shared test configuration and fixtures.

HTTP behaviour is tested against FakeBackend, an in-process aiohttp
application mimicking the warehouse API. Offline behaviour is tested by
pointing a client at a port nothing listens on, or by switching the fake
backend into a failing state.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from resilient_entities import ClientConfig, EntityClient, MemoryKeyValueStore

logger = logging.getLogger(__name__)

VALID_TOKEN = "tok-123"
REFRESHED_TOKEN = "tok-456"
UNREACHABLE_URL = "http://127.0.0.1:1"


class FakeBackend:
    """In-memory stand-in for the warehouse API.

    Attributes:
        records: Entity name -> list of stored records
        fail_status: When set, every request is answered with this status
        requests: (method, path, headers) for each request received
        uploads: (field name, file name, content type, bytes) per upload
    """

    def __init__(self) -> None:
        self.records: dict[str, list[dict[str, Any]]] = {}
        self.fail_status: int | None = None
        self.requests: list[tuple[str, str, dict[str, str]]] = []
        self.uploads: list[tuple[str, str, str, bytes]] = []
        self.base_url = ""
        self._next_id = 1

    def seed(self, entity: str, *records: dict[str, Any]) -> None:
        self.records.setdefault(entity, []).extend(dict(r) for r in records)

    def _find(self, entity: str, record_id: str) -> dict[str, Any] | None:
        for record in self.records.get(entity, []):
            if str(record.get("id")) == record_id:
                return record
        return None

    def build_app(self) -> web.Application:
        @web.middleware
        async def record_and_fail(request: web.Request, handler: Any) -> web.StreamResponse:
            headers = {k.lower(): v for k, v in request.headers.items()}
            self.requests.append((request.method, request.path, headers))
            if self.fail_status is not None:
                return web.json_response({"error": "Backend unavailable"}, status=self.fail_status)
            return await handler(request)

        app = web.Application(middlewares=[record_and_fail])
        app.router.add_get("/api/entities/{name}", self.list_entities)
        app.router.add_post("/api/entities/{name}", self.create_entity)
        app.router.add_get("/api/entities/{name}/{id}", self.get_entity)
        app.router.add_put("/api/entities/{name}/{id}", self.update_entity)
        app.router.add_delete("/api/entities/{name}/{id}", self.delete_entity)
        app.router.add_post("/api/files/upload", self.upload_file)
        app.router.add_post("/api/auth/login", self.login)
        app.router.add_post("/api/auth/password-reset", self.password_reset)
        app.router.add_get("/api/auth/me", self.me)
        app.router.add_put("/api/auth/me", self.update_me)
        app.router.add_get("/api/plain-error", self.plain_error)
        app.router.add_get("/api/bare-error", self.bare_error)
        app.router.add_get("/api/broken-json", self.broken_json)
        app.router.add_get("/api/empty", self.empty)
        return app

    async def list_entities(self, request: web.Request) -> web.Response:
        return web.json_response(self.records.get(request.match_info["name"], []))

    async def create_entity(self, request: web.Request) -> web.Response:
        body = await request.json()
        record = {**body, "id": str(self._next_id), "created_date": "2026-01-01T00:00:00.000Z"}
        self._next_id += 1
        self.records.setdefault(request.match_info["name"], []).append(record)
        return web.json_response(record, status=201)

    async def get_entity(self, request: web.Request) -> web.Response:
        record = self._find(request.match_info["name"], request.match_info["id"])
        if record is None:
            return web.json_response({"error": "Record not found"}, status=404)
        return web.json_response(record)

    async def update_entity(self, request: web.Request) -> web.Response:
        record = self._find(request.match_info["name"], request.match_info["id"])
        if record is None:
            return web.json_response({"error": "Record not found"}, status=404)
        record.update(await request.json())
        return web.json_response(record)

    async def delete_entity(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        record_id = request.match_info["id"]
        self.records[name] = [
            r for r in self.records.get(name, []) if str(r.get("id")) != record_id
        ]
        return web.json_response({"success": True, "id": record_id})

    async def upload_file(self, request: web.Request) -> web.Response:
        form = await request.post()
        field = form.get("file")
        if field is None or not hasattr(field, "file"):
            return web.json_response({"error": "File is required"}, status=400)
        content = field.file.read()
        self.uploads.append(("file", field.filename, field.content_type, content))
        return web.json_response(
            {"file_url": f"/uploads/{field.filename}", "file_name": field.filename},
            status=201,
        )

    async def login(self, request: web.Request) -> web.Response:
        body = await request.json()
        if body.get("password") != "secret":
            return web.json_response({"error": "Invalid credentials"}, status=401)
        return web.json_response(
            {"token": VALID_TOKEN, "user": {"id": "u1", "email": body.get("email")}}
        )

    async def password_reset(self, request: web.Request) -> web.Response:
        body = await request.json()
        return web.json_response({"message": f"Reset link sent to {body.get('email')}"})

    def _authorized(self, request: web.Request) -> bool:
        return request.headers.get("Authorization") in (
            f"Bearer {VALID_TOKEN}",
            f"Bearer {REFRESHED_TOKEN}",
        )

    async def me(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.json_response({"error": "Unauthorized"}, status=401)
        return web.json_response({"id": "u1", "email": "ops@example.com"})

    async def update_me(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.json_response({"error": "Unauthorized"}, status=401)
        body = await request.json()
        return web.json_response(
            {"token": REFRESHED_TOKEN, "user": {"id": "u1", "email": "ops@example.com", **body}}
        )

    async def plain_error(self, request: web.Request) -> web.Response:
        return web.Response(text="database is locked", status=500)

    async def bare_error(self, request: web.Request) -> web.Response:
        return web.Response(status=503)

    async def broken_json(self, request: web.Request) -> web.Response:
        return web.Response(text="{not json", content_type="application/json")

    async def empty(self, request: web.Request) -> web.Response:
        return web.Response(status=204)


@pytest_asyncio.fixture
async def backend() -> AsyncIterator[FakeBackend]:
    """Running fake backend; its API base is `backend.base_url`."""
    fake = FakeBackend()
    server = TestServer(fake.build_app())
    await server.start_server()
    fake.base_url = str(server.make_url("/api"))
    yield fake
    await server.close()


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest_asyncio.fixture
async def client(backend: FakeBackend, store: MemoryKeyValueStore) -> AsyncIterator[EntityClient]:
    """Client talking to the fake backend."""
    config = ClientConfig(api_url=backend.base_url, storage_backend="memory")
    async with EntityClient(config, store=store) as entity_client:
        yield entity_client


@pytest_asyncio.fixture
async def offline_client(store: MemoryKeyValueStore) -> AsyncIterator[EntityClient]:
    """Client whose backend refuses every connection."""
    config = ClientConfig(api_url=UNREACHABLE_URL, storage_backend="memory")
    async with EntityClient(config, store=store) as entity_client:
        yield entity_client
