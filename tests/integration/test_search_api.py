"""
API flow: create products over HTTP, let the index queue embed them, then
search, inspect index state and exercise the degraded fallback.
"""

import base64

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.main import create_app
from app.core.db import get_session
from app.core.dependencies import (
    get_encoder_dependency,
    get_index_queue,
    get_product_indexer,
    get_store_dependency,
)
from app.core.exceptions import StoreUnavailableError
from app.encoder.mock import HashingEncoder
from app.queue.inmemory import AsyncioIndexQueue
from app.services.indexer import ProductIndexer
from app.vectorstore.mock import InMemoryEmbeddingStore

DIMENSION = 1024
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
GPU_IMAGE = "data:image/png;base64," + base64.b64encode(PNG_BYTES + b"gpu").decode()


class _UnavailableStore(InMemoryEmbeddingStore):
    async def query_vector(self, vector, top_k, store_filter=None):
        raise StoreUnavailableError("Typesense unreachable")

    async def health_check(self) -> bool:
        return False


@pytest.fixture
async def api(session_maker):
    encoder = HashingEncoder(dimension=DIMENSION)
    store = InMemoryEmbeddingStore(dimension=DIMENSION, max_image_slots=10)
    indexer = ProductIndexer(encoder=encoder, store=store, session_maker=session_maker)
    queue = AsyncioIndexQueue(indexer.handle_job, workers=2)

    async def override_session():
        async with session_maker() as session:
            yield session
            await session.commit()

    app = create_app()
    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_encoder_dependency] = lambda: encoder
    app.dependency_overrides[get_store_dependency] = lambda: store
    app.dependency_overrides[get_product_indexer] = lambda: indexer
    app.dependency_overrides[get_index_queue] = lambda: queue

    await queue.start()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield app, client, queue, store
    await queue.stop()


async def _create(client: AsyncClient, **payload) -> dict:
    response = await client.post("/api/v1/products", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def _seed(client: AsyncClient, queue: AsyncioIndexQueue) -> None:
    await _create(
        client,
        id="gpu-1",
        name="GeForce RTX 4070",
        description="graphics card for gaming with ray tracing",
        component_type="gpu",
        category_id="graphics",
        price=599,
        image_urls=[GPU_IMAGE],
    )
    await _create(
        client,
        id="cpu-1",
        name="Ryzen 7 7800X3D",
        description="eight core desktop processor",
        component_type="cpu",
        category_id="processors",
        price=449,
    )
    await queue.join()


@pytest.mark.asyncio
async def test_text_search_after_create(api) -> None:
    _, client, queue, store = api
    await _seed(client, queue)

    assert await store.list_record_ids("gpu-1") == ["gpu-1_combined", "gpu-1_image_0", "gpu-1_text"]

    response = await client.get("/api/v1/search", params={"q": "graphics card for gaming", "top_k": 1})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["meta"]["degraded"] is False
    data = body["data"]
    assert data["degraded"] is False
    assert [item["product_id"] for item in data["results"]] == ["gpu-1"]
    assert data["results"][0]["score_type"] == "vector_similarity"
    assert data["results"][0]["product"]["name"] == "GeForce RTX 4070"


@pytest.mark.asyncio
async def test_multimodal_search_with_image(api) -> None:
    _, client, queue, _ = api
    await _seed(client, queue)

    response = await client.post(
        "/api/v1/search", json={"images": [GPU_IMAGE], "top_k": 1, "mode": "vector"}
    )

    assert response.status_code == 200
    assert [item["product_id"] for item in response.json()["data"]["results"]] == ["gpu-1"]


@pytest.mark.asyncio
async def test_empty_search_is_rejected(api) -> None:
    _, client, _, _ = api

    response = await client.post("/api/v1/search", json={"query": "   ", "images": []})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "InvalidQueryError"


@pytest.mark.asyncio
async def test_similar_products_and_unknown_product(api) -> None:
    _, client, queue, _ = api
    await _seed(client, queue)

    response = await client.get("/api/v1/search/similar/gpu-1")
    assert response.status_code == 200
    product_ids = [item["product_id"] for item in response.json()["data"]["results"]]
    assert "gpu-1" not in product_ids

    missing = await client.get("/api/v1/search/similar/nope")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_index_status_and_delete(api) -> None:
    _, client, queue, store = api
    await _seed(client, queue)

    status = await client.get("/api/v1/indexing/products/cpu-1")
    assert status.json()["data"]["state"] == "INDEXED"
    assert status.json()["data"]["record_ids"] == ["cpu-1_text", "cpu-1_combined"]

    deleted = await client.delete("/api/v1/products/cpu-1")
    assert deleted.status_code == 204
    await queue.join()

    assert await store.list_record_ids("cpu-1") == []
    status = await client.get("/api/v1/indexing/products/cpu-1")
    assert status.json()["data"]["state"] == "NOT_INDEXED"


@pytest.mark.asyncio
async def test_reindex_endpoints(api) -> None:
    _, client, queue, _ = api
    await _seed(client, queue)

    report = await client.post("/api/v1/indexing/reindex")
    assert report.status_code == 200
    assert report.json()["data"]["total"] == 2
    assert report.json()["data"]["succeeded"] == 2

    only_failed = await client.post("/api/v1/indexing/reindex", params={"only_failed": "true"})
    assert only_failed.json()["data"]["total"] == 0

    single = await client.post("/api/v1/indexing/products/gpu-1")
    assert single.json()["data"]["record_ids"] == ["gpu-1_text", "gpu-1_image_0", "gpu-1_combined"]

    dead = await client.get("/api/v1/indexing/dead-letters")
    assert dead.json()["data"] == []


@pytest.mark.asyncio
async def test_store_outage_degrades_search(api) -> None:
    app, client, queue, _ = api
    await _seed(client, queue)
    app.dependency_overrides[get_store_dependency] = lambda: _UnavailableStore(dimension=DIMENSION)

    response = await client.get("/api/v1/search", params={"q": "RTX 4070"})

    body = response.json()
    assert response.status_code == 200
    assert body["meta"]["degraded"] is True
    assert body["data"]["degraded"] is True
    assert [item["product_id"] for item in body["data"]["results"]] == ["gpu-1"]
    assert body["data"]["results"][0]["score_type"] == "fallback"

    health = await client.get("/api/v1/health")
    assert health.json()["data"]["status"] == "degraded"


@pytest.mark.asyncio
async def test_unusable_images_are_a_bad_request(api) -> None:
    _, client, _, _ = api

    response = await client.post("/api/v1/search", json={"images": ["data:image/png;base64,AAAA"]})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "InvalidQueryError"
