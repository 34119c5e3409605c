"""
Unit tests for ClipEncoder with the sentence-transformers model patched out
"""

import asyncio
import base64
from unittest.mock import patch

import pytest

from app.core.exceptions import DimensionMismatchError, EmptyInputError, EncodingError
from app.encoder.clip import ClipEncoder

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class _FakeModel:
    def __init__(self, dimension: int = 4):
        self.dimension = dimension
        self.calls: list[list] = []

    def encode(self, inputs, normalize_embeddings=False):
        self.calls.append(list(inputs))
        return [[0.5] * self.dimension for _ in inputs]


def _encoder(**kwargs) -> ClipEncoder:
    return ClipEncoder(model_name="fake-clip", device="cpu", dimension=4, method="clip", **kwargs)


@pytest.mark.asyncio
async def test_embed_text_returns_vector_of_dimension() -> None:
    model = _FakeModel()
    with patch("app.encoder.clip.SentenceTransformer", return_value=model):
        encoder = _encoder()
        vector = await encoder.embed_text("  RTX 4070 graphics card ")

    assert vector == [0.5, 0.5, 0.5, 0.5]
    assert model.calls == [["RTX 4070 graphics card"]]
    assert encoder.is_ready


@pytest.mark.asyncio
async def test_embed_text_rejects_blank_input() -> None:
    with patch("app.encoder.clip.SentenceTransformer") as factory:
        encoder = _encoder()
        with pytest.raises(EmptyInputError):
            await encoder.embed_text("   ")

    factory.assert_not_called()


@pytest.mark.asyncio
async def test_model_loads_once_for_concurrent_callers() -> None:
    with patch("app.encoder.clip.SentenceTransformer", return_value=_FakeModel()) as factory:
        encoder = _encoder()
        await asyncio.gather(*(encoder.embed_text(f"query {index}") for index in range(5)))

    assert factory.call_count == 1


@pytest.mark.asyncio
async def test_failed_load_is_retried_on_next_call() -> None:
    with patch(
        "app.encoder.clip.SentenceTransformer",
        side_effect=[RuntimeError("download failed"), _FakeModel()],
    ) as factory:
        encoder = _encoder()
        with pytest.raises(EncodingError):
            await encoder.warmup()

        vector = await encoder.embed_text("cpu")

    assert factory.call_count == 2
    assert len(vector) == 4


@pytest.mark.asyncio
async def test_wrong_model_dimension_is_reported() -> None:
    with patch("app.encoder.clip.SentenceTransformer", return_value=_FakeModel(dimension=3)):
        encoder = _encoder()
        with pytest.raises(DimensionMismatchError):
            await encoder.embed_text("cpu")


@pytest.mark.asyncio
async def test_embed_image_maps_decode_failure_to_encoding_error() -> None:
    source = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
    with patch("app.encoder.clip.SentenceTransformer", return_value=_FakeModel()):
        encoder = _encoder()
        # valid signature, but Pillow cannot decode the truncated body
        with pytest.raises(EncodingError):
            await encoder.embed_image(source)


@pytest.mark.asyncio
async def test_embed_image_encodes_decoded_image() -> None:
    model = _FakeModel()
    with patch("app.encoder.clip.SentenceTransformer", return_value=model), patch(
        "app.encoder.clip.open_image", return_value="decoded-image"
    ):
        encoder = _encoder()
        vector = await encoder.embed_image(
            "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
        )

    assert vector == [0.5, 0.5, 0.5, 0.5]
    assert model.calls == [["decoded-image"]]
