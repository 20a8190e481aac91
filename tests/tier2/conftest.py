"""Tier 2 fixtures: real Kubo + local backend server."""

from __future__ import annotations

import itertools

import httpx
import pytest
from aiohttp import web

from voxelcraft.backend.client import HttpBackendClient
from voxelcraft.ipfs.kubo import KuboArtifactStore
from voxelcraft.orchestrator.orchestrator import TransactionOrchestrator

BACKEND_PORT = 9199


@pytest.fixture(scope="session")
def kubo_available():
    """Check if local Kubo daemon is running. Skip tier2 tests if not."""
    try:
        r = httpx.post("http://127.0.0.1:5001/api/v0/id", timeout=3)
        if r.status_code == 200:
            return True
        pytest.skip("Kubo daemon not available at localhost:5001")
    except (httpx.ConnectError, httpx.TimeoutException):
        pytest.skip("Kubo daemon not available at localhost:5001")


@pytest.fixture
async def kubo_store(kubo_available):
    """KuboArtifactStore against the local node. Unpins what the test added."""
    store = KuboArtifactStore("http://127.0.0.1:5001", gateway_url="http://127.0.0.1:8080")
    added: list[str] = []
    original = store.upload_binary

    async def tracking_upload(data, progress=None, name=None):
        artifact = await original(data, progress=progress, name=name)
        added.append(artifact.hash)
        return artifact

    store.upload_binary = tracking_upload
    yield store
    for content_hash in added:
        await store.unpin(content_hash)


@pytest.fixture
async def backend_server():
    """Local aiohttp server speaking the game backend's response envelope.

    Returns (base_url, worlds). ``worlds`` maps world id to the stored record.
    """
    worlds: dict[str, dict] = {}
    ids = itertools.count(1)

    async def save_world(request):
        body = await request.json()
        if not body.get("worldId"):
            return web.json_response(
                {"success": False, "error": "worldId is required"}, status=400,
            )
        record = dict(body, id=f"srv-{next(ids)}")
        worlds[body["worldId"]] = record
        return web.json_response({"success": True, "data": {"id": record["id"]}})

    async def get_world(request):
        world_id = request.match_info["world_id"]
        if world_id not in worlds:
            return web.json_response(
                {"success": False, "error": f"World {world_id} not found"}, status=404,
            )
        return web.json_response({"success": True, "data": worlds[world_id]})

    async def status(request):
        return web.json_response({"success": True, "data": {"healthy": True}})

    app = web.Application()
    app.router.add_post("/api/game/save-world", save_world)
    app.router.add_get("/api/game/world/{world_id}", get_world)
    app.router.add_get("/api/system/status", status)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", BACKEND_PORT)
    await site.start()
    yield f"http://127.0.0.1:{BACKEND_PORT}/api", worlds
    await runner.cleanup()


@pytest.fixture
async def backend_client(backend_server):
    base_url, _ = backend_server
    client = HttpBackendClient(base_url, timeout=5)
    yield client
    await client.close()


@pytest.fixture
def live_orchestrator(session, kubo_store, mock_ledger, backend_client, registry):
    """Orchestrator over real Kubo and the local backend; ledger stays mocked."""
    return TransactionOrchestrator(session, kubo_store, mock_ledger, backend_client, registry)
