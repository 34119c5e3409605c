import pytest

from fastapi import FastAPI, Query
from httpx import ASGITransport, AsyncClient

from app.api.error_handlers import DEFAULT_ERROR_CODE, register_exception_handlers
from app.api.response_middleware import SuccessEnvelopeMiddleware
from app.core.exceptions import (
    EmptyInputError,
    EncodingError,
    InvalidQueryError,
    PCShopException,
    ProductNotFoundError,
    StoreUnavailableError,
)
from pydantic import BaseModel


@pytest.fixture
def app() -> FastAPI:
    fastapi_app = FastAPI()
    fastapi_app.add_middleware(SuccessEnvelopeMiddleware)
    register_exception_handlers(fastapi_app)

    @fastapi_app.get("/product")
    async def product_endpoint():
        raise ProductNotFoundError("42")

    @fastapi_app.get("/query")
    async def query_endpoint():
        raise InvalidQueryError("Search query must contain text or at least one image")

    @fastapi_app.get("/encoding")
    async def encoding_endpoint():
        raise EncodingError("Unsupported or corrupt image data")

    @fastapi_app.get("/empty")
    async def empty_endpoint():
        raise EmptyInputError("Cannot embed empty text")

    @fastapi_app.get("/store")
    async def store_endpoint():
        raise StoreUnavailableError("Typesense unreachable")

    @fastapi_app.get("/custom")
    async def custom_endpoint():
        raise PCShopException("force fallback")

    @fastapi_app.get("/crash")
    async def crash_endpoint():
        raise RuntimeError("boom")

    @fastapi_app.get("/success")
    async def success_endpoint():
        return {"ok": True}

    @fastapi_app.get("/degraded")
    async def degraded_endpoint():
        return {"degraded": True, "results": []}

    @fastapi_app.get("/query-validation")
    async def query_validation_endpoint(q: str = Query(..., min_length=1)):
        return {"q": q}

    class Item(BaseModel):
        name: str

    @fastapi_app.post("/body-validation")
    async def body_validation_endpoint(item: Item):
        return item

    return fastapi_app


async def _get(app: FastAPI, path: str, **kwargs):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get(path, **kwargs)


@pytest.mark.asyncio
async def test_product_not_found_envelope(app: FastAPI) -> None:
    response = await _get(app, "/product")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["data"] is None
    assert body["error"]["code"] == "ProductNotFoundError"
    assert body["error"]["message"] == "Product with id=42 not found"
    assert body["error"]["details"] == {"product_id": "42"}
    assert "meta" in body


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path, status_code, code",
    [
        ("/query", 400, "InvalidQueryError"),
        ("/encoding", 422, "EncodingError"),
        ("/empty", 400, "EmptyInputError"),
        ("/store", 503, "StoreUnavailableError"),
    ],
)
async def test_domain_errors_map_to_status(app: FastAPI, path: str, status_code: int, code: str) -> None:
    response = await _get(app, path)

    assert response.status_code == status_code
    assert response.json()["error"]["code"] == code


@pytest.mark.asyncio
async def test_unmapped_app_error_envelope(app: FastAPI) -> None:
    response = await _get(app, "/custom")

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == DEFAULT_ERROR_CODE
    assert body["data"] is None


@pytest.mark.asyncio
async def test_unexpected_error_envelope(app: FastAPI) -> None:
    response = await _get(app, "/crash")

    assert response.status_code == 500
    body = response.json()
    assert body["error"]["code"] == DEFAULT_ERROR_CODE
    assert body["error"]["message"] == "Unexpected server error."


@pytest.mark.asyncio
async def test_success_response_envelope(app: FastAPI) -> None:
    response = await _get(app, "/success", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == {"ok": True}
    assert body["error"] is None
    assert body["meta"]["requestId"] == "req-123"
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_degraded_flag_is_copied_to_meta(app: FastAPI) -> None:
    response = await _get(app, "/degraded")

    body = response.json()
    assert body["data"]["degraded"] is True
    assert body["meta"]["degraded"] is True


@pytest.mark.asyncio
async def test_query_validation_error_envelope(app: FastAPI) -> None:
    response = await _get(app, "/query-validation", params={"q": ""})

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["data"] is None
    assert body["error"]["code"] == "ValidationError"
    assert "String should have at least" in body["error"]["message"]
    assert body["error"].get("details")


@pytest.mark.asyncio
async def test_body_validation_error_envelope(app: FastAPI) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/body-validation", json={})

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "ValidationError"
    assert "Field required" in body["error"]["message"]
    assert "meta" in body
