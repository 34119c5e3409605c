"""
CLIP Encoder

Text and image embeddings in CLIP's joint space through sentence-transformers.
SentenceTransformer.encode() is blocking, so every call runs in the default
threadpool, throttled by a semaphore and bounded by a timeout.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

from sentence_transformers import SentenceTransformer

from app.core.config import settings
from app.core.exceptions import EmptyInputError, EncodingError, PCShopException
from app.core.logging import get_logger
from app.encoder.images import ImageLoader, open_image
from app.encoder.protocol import Vector, to_vector

logger = get_logger(__name__)


class ClipEncoder:
    """
    Lazily loaded CLIP model shared by indexing and search.

    - Single-flight load: concurrent first callers await the same load task
    - A failed load is forgotten so the next call retries
    - Each encode is throttled by a semaphore and bounded by a timeout
    """

    def __init__(
        self,
        *,
        model_name: str | None = None,
        device: str | None = None,
        dimension: int | None = None,
        method: str | None = None,
        max_concurrency: int | None = None,
        timeout_seconds: float | None = None,
        load_timeout_seconds: float | None = None,
        image_loader: ImageLoader | None = None,
    ) -> None:
        self.model_name = model_name or settings.clip_model_name
        self.device = device or settings.embedding_device
        self.dimension = dimension or settings.embedding_dimension
        self.method = method or settings.embedding_method
        self.max_concurrency = max_concurrency or settings.embedding_max_concurrency
        self.timeout_seconds = timeout_seconds or settings.encoder_timeout_seconds
        self.load_timeout_seconds = load_timeout_seconds or settings.model_load_timeout_seconds
        self.image_loader = image_loader or ImageLoader()

        self.model: Optional[SentenceTransformer] = None
        self._load_task: asyncio.Task | None = None
        self._semaphore: Optional[asyncio.Semaphore] = None

        logger.info(
            "clip_encoder_created",
            model_name=self.model_name,
            device=self.device,
            dimension=self.dimension,
            max_concurrency=self.max_concurrency,
        )

    @property
    def is_ready(self) -> bool:
        return self.model is not None

    async def warmup(self) -> None:
        """
        Preload the model so the first request does not pay for it.

        Raises:
            EncodingError: If model loading fails or times out
        """
        await self._ensure_model()

    async def embed_text(self, text: str) -> Vector:
        if text is None or not text.strip():
            raise EmptyInputError("Cannot embed empty text")

        model = await self._ensure_model()
        raw = await self._encode(lambda: model.encode([text.strip()], normalize_embeddings=True))
        vector = to_vector(raw, self.dimension)
        logger.debug("text_embedded", text_length=len(text), embedding_dim=len(vector))
        return vector

    async def embed_image(self, source: str) -> Vector:
        data = await self.image_loader.load(source)
        model = await self._ensure_model()
        # Pillow decoding happens in the worker thread together with encode
        raw = await self._encode(
            lambda: model.encode([open_image(data)], normalize_embeddings=True)
        )
        vector = to_vector(raw, self.dimension)
        logger.debug("image_embedded", image_bytes=len(data), embedding_dim=len(vector))
        return vector

    # Private helper methods ------------------------------------------------

    async def _ensure_model(self) -> SentenceTransformer:
        if self.model is not None:
            return self.model

        if self._load_task is None:
            logger.info("clip_encoder_lazy_initialization", model_name=self.model_name)
            self._load_task = asyncio.create_task(self._load_model())

        task = self._load_task
        try:
            # shield: a cancelled waiter must not cancel the shared load
            return await asyncio.shield(task)
        except BaseException:
            if task.done() and self._load_task is task:
                self._load_task = None
            raise

    async def _load_model(self) -> SentenceTransformer:
        t0 = time.perf_counter()
        logger.info("clip_encoder_loading_model", model_name=self.model_name, device=self.device)

        loop = asyncio.get_running_loop()
        try:
            model = await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    lambda: SentenceTransformer(self.model_name, device=self.device),
                ),
                timeout=self.load_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.error("clip_encoder_load_timeout", model_name=self.model_name)
            raise EncodingError(f"Timeout loading CLIP model {self.model_name}") from exc
        except Exception as exc:
            logger.error("clip_encoder_load_failed", model_name=self.model_name, error=str(exc))
            raise EncodingError(f"Failed to load CLIP model {self.model_name}: {exc}") from exc

        self._semaphore = asyncio.Semaphore(self.max_concurrency)
        self.model = model
        logger.info(
            "clip_encoder_model_loaded",
            model_name=self.model_name,
            elapsed_seconds=f"{time.perf_counter() - t0:.2f}",
        )
        return model

    async def _encode(self, call: Any) -> Any:
        if self._semaphore is None:
            raise EncodingError("Encoder not initialized")

        loop = asyncio.get_running_loop()
        async with self._semaphore:
            try:
                return await asyncio.wait_for(
                    loop.run_in_executor(None, call),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                logger.warning("clip_encode_timeout", timeout=self.timeout_seconds)
                raise EncodingError(f"Encoding timed out after {self.timeout_seconds}s") from exc
            except PCShopException:
                raise
            except Exception as exc:
                logger.error("clip_encode_failed", error=str(exc))
                raise EncodingError(f"Encoding failed: {exc}") from exc
