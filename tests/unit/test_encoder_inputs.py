"""
Unit tests for encoder output conversion and image source loading
"""

import base64

import httpx
import pytest

from app.core.exceptions import DimensionMismatchError, EmptyInputError, EncodingError
from app.encoder.images import ImageLoader, decode_base64_image, detect_image_format
from app.encoder.protocol import to_vector

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x01" * 32


class _FakeArray:
    def __init__(self, values):
        self._values = values

    def tolist(self):
        return self._values


def _data_url(payload: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode('ascii')}"


# to_vector ------------------------------------------------------------


def test_to_vector_accepts_array_like_batch() -> None:
    assert to_vector(_FakeArray([[0.5, 1, -2.0]]), 3) == [0.5, 1.0, -2.0]


def test_to_vector_rejects_wrong_dimension() -> None:
    with pytest.raises(DimensionMismatchError):
        to_vector([0.1, 0.2], 3)


@pytest.mark.parametrize(
    "raw",
    [[], None, "0.1,0.2", [0.1, "x"], [True, 0.2], [float("nan"), 0.1], [[0.1], [0.2]]],
)
def test_to_vector_rejects_invalid_output(raw) -> None:
    with pytest.raises(EncodingError):
        to_vector(raw)


# image formats --------------------------------------------------------


@pytest.mark.parametrize(
    "data, expected",
    [
        (JPEG_BYTES, "jpeg"),
        (PNG_BYTES, "png"),
        (b"GIF89a" + b"\x00" * 8, "gif"),
        (b"BM" + b"\x00" * 8, "bmp"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "webp"),
    ],
)
def test_detect_image_format(data: bytes, expected: str) -> None:
    assert detect_image_format(data) == expected


def test_detect_image_format_rejects_unknown_signature() -> None:
    with pytest.raises(EncodingError):
        detect_image_format(b"%PDF-1.7 not an image")


def test_decode_base64_image_data_url_and_bare() -> None:
    assert decode_base64_image(_data_url(PNG_BYTES)) == PNG_BYTES
    assert decode_base64_image(base64.b64encode(JPEG_BYTES).decode()) == JPEG_BYTES


def test_decode_base64_image_rejects_garbage() -> None:
    with pytest.raises(EncodingError):
        decode_base64_image("data:image/png;base64,@@not-base64@@")


# ImageLoader ----------------------------------------------------------


@pytest.mark.asyncio
async def test_image_loader_rejects_blank_source() -> None:
    with pytest.raises(EmptyInputError):
        await ImageLoader().load("   ")


@pytest.mark.asyncio
async def test_image_loader_fetches_http_images() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/ok.png":
            return httpx.Response(200, content=PNG_BYTES)
        return httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        loader = ImageLoader(client=client)

        assert await loader.load("https://cdn.example.com/ok.png") == PNG_BYTES
        with pytest.raises(EncodingError):
            await loader.load("https://cdn.example.com/missing.png")


@pytest.mark.asyncio
async def test_image_loader_maps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(EncodingError):
            await ImageLoader(client=client).load("http://cdn.example.com/a.jpg")


@pytest.mark.asyncio
async def test_image_loader_enforces_size_limit() -> None:
    loader = ImageLoader(max_bytes=16)

    with pytest.raises(EncodingError):
        await loader.load(_data_url(PNG_BYTES))


@pytest.mark.asyncio
async def test_image_loader_stops_reading_oversized_download() -> None:
    sent: list[int] = []

    async def body():
        for index in range(100):
            sent.append(index)
            yield PNG_BYTES

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body())

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        loader = ImageLoader(client=client, max_bytes=len(PNG_BYTES) * 2)

        with pytest.raises(EncodingError):
            await loader.load("https://cdn.example.com/huge.png")

    assert len(sent) < 100


@pytest.mark.asyncio
async def test_image_loader_rejects_declared_oversized_download() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=PNG_BYTES * 4)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(EncodingError):
            await ImageLoader(client=client, max_bytes=len(PNG_BYTES)).load("https://cdn.example.com/big.png")
