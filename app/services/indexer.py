"""
Product Indexer

Turns a product into embedding records:

    {id}_text      text fields combined with the text weights
    {id}_image_{i} one per successfully embedded image (i = source position)
    {id}_combined  text fields + images with the full weight policy

Re-indexing deletes the previous records first, so running it twice yields
the same record set. Progress and failures are recorded in the embedding
manifest (product_embedding_index).
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.exceptions import EncodingError, IndexingError, ProductNotFoundError
from app.core.logging import get_logger, measure_latency, metrics_counter
from app.encoder.combiner import WeightPolicy, combine
from app.encoder.protocol import EncoderProtocol, Vector
from app.models.embedding_index import IndexState
from app.queue.schemas import IndexAction, IndexJob
from app.repositories.embedding_index_repository import EmbeddingIndexRepository
from app.repositories.product_repository import ProductRepository
from app.schemas.indexing import IndexResult, IndexStatusResponse, ReindexReport
from app.schemas.product import ProductSnapshot
from app.vectorstore.protocol import EmbeddingStoreProtocol
from app.vectorstore.schemas import EmbeddingRecord, EmbeddingType, make_record_id

logger = get_logger(__name__)


class ProductIndexer:
    """Index/deindex pipeline plus bulk re-index sweeps."""

    def __init__(
        self,
        *,
        encoder: EncoderProtocol,
        store: EmbeddingStoreProtocol,
        session_maker: async_sessionmaker[AsyncSession],
        weight_policy: WeightPolicy | None = None,
        max_images: int | None = None,
        reindex_concurrency: int | None = None,
        page_size: int | None = None,
    ) -> None:
        self.encoder = encoder
        self.store = store
        self.session_maker = session_maker
        self.weight_policy = weight_policy or WeightPolicy.from_settings()
        self.max_images = max_images if max_images is not None else settings.max_images_per_product
        self.reindex_concurrency = reindex_concurrency or settings.reindex_concurrency
        self.page_size = page_size or settings.reindex_page_size
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def index_product(self, product: ProductSnapshot) -> IndexResult:
        """
        Build and store all embedding records of one product.

        Text embedding failures abort; an image that cannot be fetched or
        embedded is skipped.

        Raises:
            IndexingError: carries product_id and the failing stage
        """
        async with self._serialized(product.id):
            return await self._index_product(product)

    @measure_latency("index_product")
    async def _index_product(self, product: ProductSnapshot) -> IndexResult:
        product_id = product.id
        stage = "prepare"
        written: list[str] = []

        try:
            known_ids = await self._begin(product_id)

            stage = "delete_existing"
            await self.store.delete_all_for_product(product_id, known_ids)

            stage = "embed_text"
            text_fields = product.text_fields()
            if not text_fields:
                raise ValueError("product has no text to embed")
            text_vectors: dict[str, Vector] = {}
            for field, value in text_fields.items():
                text_vectors[field] = await self.encoder.embed_text(value)

            stage = "embed_images"
            image_vectors, failed_images = await self._embed_images(product)

            stage = "upsert_records"
            field_weights = self.weight_policy.text_field_weights(text_vectors.keys())
            text_weights = [field_weights[field] for field in text_vectors]
            text_vector = combine(list(text_vectors.values()), text_weights)

            has_images = bool(image_vectors)
            text_record = self._build_record(
                product, EmbeddingType.TEXT, text_vector, image_count=len(image_vectors)
            )
            await self.store.upsert(text_record)
            written.append(text_record.record_id)

            for image_index, vector in image_vectors:
                record = self._build_record(
                    product,
                    EmbeddingType.IMAGE,
                    vector,
                    image_index=image_index,
                    image_count=len(image_vectors),
                )
                await self.store.upsert(record)
                written.append(record.record_id)

            stage = "upsert_combined"
            combined_vector = combine(
                [*text_vectors.values(), *(vector for _, vector in image_vectors)],
                [*text_weights, *self.weight_policy.image_weights(len(image_vectors))],
            )
            combined_record = self._build_record(
                product, EmbeddingType.COMBINED, combined_vector, image_count=len(image_vectors)
            )
            await self.store.upsert(combined_record)
            written.append(combined_record.record_id)

            stage = "record_manifest"
            async with self.session_maker() as session:
                await EmbeddingIndexRepository(session).mark_indexed(
                    product_id, written, self.encoder.method
                )
                await session.commit()

        except Exception as exc:
            logger.error(
                "product_index_failed",
                product_id=product_id,
                stage=stage,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            metrics_counter("product_index_failure", stage=stage)
            await self._record_failure(product_id, stage, str(exc), written)
            raise IndexingError(
                f"Indexing product {product_id} failed at {stage}: {exc}",
                product_id=product_id,
                stage=stage,
            ) from exc

        logger.info(
            "product_indexed",
            product_id=product_id,
            records=len(written),
            has_images=has_images,
            failed_images=failed_images,
        )
        return IndexResult(product_id=product_id, record_ids=written, failed_images=failed_images)

    async def deindex_product(self, product_id: str) -> int:
        """
        Remove every record of a product and its manifest row.

        Returns the number of deleted records; a product that was never
        indexed yields 0.
        """
        async with self._serialized(product_id):
            async with self.session_maker() as session:
                entry = await EmbeddingIndexRepository(session).get(product_id)
                known_ids = list(entry.record_ids) if entry else []

            deleted = await self.store.delete_all_for_product(product_id, known_ids)

            async with self.session_maker() as session:
                await EmbeddingIndexRepository(session).remove(product_id)
                await session.commit()

        logger.info("product_deindexed", product_id=product_id, deleted=deleted)
        return deleted

    async def reindex_all(self) -> ReindexReport:
        """Re-embed every product page by page; one failure never stops the sweep."""

        started = time.perf_counter()
        report = ReindexReport()
        offset = 0

        while True:
            async with self.session_maker() as session:
                page = await ProductRepository(session).list_page(limit=self.page_size, offset=offset)
                snapshots = [ProductSnapshot.model_validate(product) for product in page]
            if not snapshots:
                break

            await self._index_batch(snapshots, report)
            offset += len(snapshots)

        report.duration_seconds = round(time.perf_counter() - started, 3)
        logger.info(
            "reindex_all_completed",
            total=report.total,
            succeeded=report.succeeded,
            failed=report.failed,
            duration_seconds=report.duration_seconds,
        )
        return report

    async def reindex_failed(self) -> ReindexReport:
        """Retry products whose manifest is FAILED; drop entries of deleted products."""

        started = time.perf_counter()
        report = ReindexReport()

        async with self.session_maker() as session:
            failed_ids = list(await EmbeddingIndexRepository(session).list_product_ids(IndexState.FAILED))
            products = await ProductRepository(session).get_by_ids(failed_ids)
            snapshots = [ProductSnapshot.model_validate(product) for product in products]

        existing = {snapshot.id for snapshot in snapshots}
        for product_id in failed_ids:
            if product_id not in existing:
                await self.deindex_product(product_id)

        await self._index_batch(snapshots, report)

        report.duration_seconds = round(time.perf_counter() - started, 3)
        logger.info(
            "reindex_failed_completed",
            total=report.total,
            succeeded=report.succeeded,
            failed=report.failed,
        )
        return report

    async def get_status(self, product_id: str) -> IndexStatusResponse:
        async with self.session_maker() as session:
            entry = await EmbeddingIndexRepository(session).get(product_id)
        if entry is None:
            return IndexStatusResponse(product_id=product_id)
        return IndexStatusResponse.model_validate(entry)

    async def handle_job(self, job: IndexJob) -> None:
        """Queue handler: run the job's action; exceptions trigger a retry."""

        if job.action is IndexAction.DEINDEX:
            await self.deindex_product(job.product_id)
            return

        if job.product is not None and job.attempts == 0:
            await self.index_product(job.product)
            return

        # retries re-read the row: the snapshot may predate an update or a delete
        try:
            await self.reindex_product(job.product_id)
        except ProductNotFoundError:
            logger.info("index_job_product_deleted", product_id=job.product_id, job_id=job.job_id)
            await self.deindex_product(job.product_id)

    async def reindex_product(self, product_id: str) -> IndexResult:
        """
        Load the current row and index it.

        Raises:
            ProductNotFoundError: unknown product
            IndexingError: pipeline failure
        """
        async with self.session_maker() as session:
            product = await ProductRepository(session).get_by_id_or_raise(product_id)
            snapshot = ProductSnapshot.model_validate(product)
        return await self.index_product(snapshot)

    # Private helper methods ------------------------------------------------

    @asynccontextmanager
    async def _serialized(self, product_id: str) -> AsyncIterator[None]:
        """One pipeline run per product at a time; the lock is dropped when unused."""
        lock = self._locks.setdefault(product_id, asyncio.Lock())
        self._lock_users[product_id] = self._lock_users.get(product_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[product_id] -= 1
            if self._lock_users[product_id] == 0:
                del self._lock_users[product_id]
                del self._locks[product_id]

    async def _begin(self, product_id: str) -> list[str]:
        async with self.session_maker() as session:
            entry = await EmbeddingIndexRepository(session).mark_indexing(product_id)
            known_ids = list(entry.record_ids or [])
            await session.commit()
        return known_ids

    async def _embed_images(self, product: ProductSnapshot) -> tuple[list[tuple[int, Vector]], list[int]]:
        vectors: list[tuple[int, Vector]] = []
        failed: list[int] = []

        for image_index, source in enumerate(product.image_urls[: self.max_images]):
            try:
                vectors.append((image_index, await self.encoder.embed_image(source)))
            except EncodingError as exc:
                failed.append(image_index)
                logger.warning(
                    "product_image_embedding_skipped",
                    product_id=product.id,
                    image_index=image_index,
                    error=str(exc),
                )
                metrics_counter("product_image_embedding_failure")

        return vectors, failed

    async def _record_failure(self, product_id: str, stage: str, error: str, written: list[str]) -> None:
        try:
            async with self.session_maker() as session:
                await EmbeddingIndexRepository(session).mark_failed(
                    product_id, stage=stage, error=error, record_ids=written or None
                )
                await session.commit()
        except Exception as exc:  # noqa: BLE001 - keep the original failure
            logger.error("index_manifest_update_failed", product_id=product_id, error=str(exc))

    async def _index_batch(self, snapshots: Sequence[ProductSnapshot], report: ReindexReport) -> None:
        semaphore = asyncio.Semaphore(self.reindex_concurrency)

        async def run_one(snapshot: ProductSnapshot) -> bool:
            async with semaphore:
                try:
                    await self.index_product(snapshot)
                except IndexingError:
                    return False
                return True

        outcomes = await asyncio.gather(*(run_one(snapshot) for snapshot in snapshots))
        for snapshot, ok in zip(snapshots, outcomes):
            report.total += 1
            if ok:
                report.succeeded += 1
            else:
                report.failed += 1
                report.failed_product_ids.append(snapshot.id)

    def _build_record(
        self,
        product: ProductSnapshot,
        embedding_type: EmbeddingType,
        vector: Vector,
        *,
        image_index: int | None = None,
        image_count: int = 0,
    ) -> EmbeddingRecord:
        return EmbeddingRecord(
            record_id=make_record_id(product.id, embedding_type, image_index),
            product_id=product.id,
            vector=vector,
            embedding_type=embedding_type,
            embedding_method=self.encoder.method,
            image_index=image_index,
            name=product.name,
            description=product.description,
            price=product.price,
            component_type=product.component_type.value if product.component_type else None,
            category_id=product.category_id,
            has_images=image_count > 0,
            image_count=image_count,
            searchable_text=product.searchable_text,
        )
