"""
Image source loading

Turns an image reference (http(s) URL, data URL or bare base64) into raw bytes,
checks the binary signature and decodes it with Pillow.
"""

from __future__ import annotations

import base64
import binascii
from io import BytesIO

import httpx
from PIL import Image, UnidentifiedImageError

from app.core.config import settings
from app.core.exceptions import EmptyInputError, EncodingError
from app.core.logging import get_logger

logger = get_logger(__name__)

# (format, signature, offset)
IMAGE_SIGNATURES: tuple[tuple[str, bytes, int], ...] = (
    ("jpeg", b"\xff\xd8\xff", 0),
    ("png", b"\x89PNG\r\n\x1a\n", 0),
    ("gif", b"GIF87a", 0),
    ("gif", b"GIF89a", 0),
    ("bmp", b"BM", 0),
)


def detect_image_format(data: bytes) -> str:
    """
    Identify the image format from its leading bytes.

    Raises:
        EncodingError: unknown signature
    """
    for image_format, signature, offset in IMAGE_SIGNATURES:
        if data[offset : offset + len(signature)] == signature:
            return image_format

    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"

    raise EncodingError("Unsupported or corrupt image data")


def decode_base64_image(source: str) -> bytes:
    """Decode a ``data:image/...;base64,`` URL or a bare base64 string."""

    payload = source.strip()
    if payload.startswith("data:"):
        header, _, payload = payload.partition(",")
        if ";base64" not in header:
            raise EncodingError("Only base64 data URLs are supported")

    try:
        data = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EncodingError(f"Invalid base64 image payload: {exc}") from exc

    if not data:
        raise EmptyInputError("Image payload is empty")
    return data


def open_image(data: bytes) -> Image.Image:
    """Decode bytes into an RGB Pillow image."""

    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise EncodingError(f"Cannot decode image: {exc}") from exc
    return image.convert("RGB")


class ImageLoader:
    """Fetches or decodes image sources with bounded time and size."""

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        max_bytes: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds or settings.image_fetch_timeout_seconds
        self.max_bytes = max_bytes or settings.image_max_bytes
        self._client = client

    async def load(self, source: str) -> bytes:
        if source is None or not source.strip():
            raise EmptyInputError("Image source is empty")

        source = source.strip()
        if source.startswith(("http://", "https://")):
            data = await self._fetch(source)
        else:
            data = decode_base64_image(source)

        if len(data) > self.max_bytes:
            raise EncodingError(f"Image exceeds {self.max_bytes} bytes")

        detect_image_format(data)
        return data

    async def _fetch(self, url: str) -> bytes:
        try:
            if self._client is not None:
                return await self._read_capped(self._client, url)
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, follow_redirects=True
            ) as client:
                return await self._read_capped(client, url)
        except httpx.TimeoutException as exc:
            logger.warning("image_fetch_timeout", url=url, timeout=self.timeout_seconds)
            raise EncodingError(f"Timed out fetching image {url}") from exc
        except httpx.HTTPError as exc:
            logger.warning("image_fetch_failed", url=url, error=str(exc))
            raise EncodingError(f"Failed to fetch image {url}: {exc}") from exc

    async def _read_capped(self, client: httpx.AsyncClient, url: str) -> bytes:
        """Stream the body, giving up as soon as it grows past ``max_bytes``."""
        async with client.stream("GET", url, timeout=self.timeout_seconds) as response:
            if response.status_code >= 400:
                raise EncodingError(f"Image fetch returned HTTP {response.status_code} for {url}")

            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > self.max_bytes:
                raise EncodingError(f"Image exceeds {self.max_bytes} bytes: {url}")

            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > self.max_bytes:
                    logger.warning("image_fetch_oversized", url=url, max_bytes=self.max_bytes)
                    raise EncodingError(f"Image exceeds {self.max_bytes} bytes: {url}")
            return bytes(body)
