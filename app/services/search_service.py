"""
Hybrid Search Service

Query (text and/or images) -> combined query vector -> store query over
combined records -> per-product dedup -> hydrate from the relational store ->
post-filters. When the embedding store fails (unreachable or rejecting the
query) or the query text cannot be embedded, falls back to a product-name
search and flags the response as degraded.
"""

from __future__ import annotations

from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import EncodingError, InvalidQueryError, VectorStoreError
from app.core.logging import get_logger, measure_latency, metrics_counter
from app.encoder.combiner import WeightPolicy, combine
from app.encoder.protocol import EncoderProtocol, Vector
from app.models.product import Product
from app.repositories.product_repository import ProductFilters, ProductRepository
from app.schemas.product import ProductResponse
from app.schemas.search import (
    ScoreType,
    SearchFilters,
    SearchMode,
    SearchOptions,
    SearchResponse,
    SearchResultItem,
)
from app.services.ranking import RankedProduct, deduplicate_product_results, reciprocal_rank_fusion
from app.vectorstore.protocol import EmbeddingStoreProtocol
from app.vectorstore.schemas import EmbeddingType, StoreFilter

logger = get_logger(__name__)


class HybridSearchService:
    """Vector, keyword and fused product search with degraded fallback."""

    def __init__(
        self,
        *,
        session: AsyncSession,
        encoder: EncoderProtocol,
        store: EmbeddingStoreProtocol,
        repository: ProductRepository | None = None,
        weight_policy: WeightPolicy | None = None,
        candidate_multiplier: int | None = None,
        max_top_k: int | None = None,
        rrf_k: int | None = None,
    ) -> None:
        self.session = session
        self.repository = repository or ProductRepository(session)
        self.encoder = encoder
        self.store = store
        self.weight_policy = weight_policy or WeightPolicy.from_settings()
        self.candidate_multiplier = candidate_multiplier or settings.search_candidate_multiplier
        self.max_top_k = max_top_k or settings.search_max_top_k
        self.rrf_k = rrf_k if rrf_k is not None else settings.search_rrf_k

    @measure_latency("product_search")
    async def search(
        self,
        query_text: str | None = None,
        query_images: Sequence[str] = (),
        options: SearchOptions | None = None,
    ) -> SearchResponse:
        """
        Ranked products for a text and/or image query.

        Raises:
            InvalidQueryError: no text and no images, keyword mode without text, or an
                image-only query whose images all failed to embed
        """
        return await self._search(query_text, query_images, options or SearchOptions())

    async def find_similar(self, product_id: str, top_k: int | None = None) -> SearchResponse:
        """
        Products similar to ``product_id``, the product itself excluded.

        Raises:
            ProductNotFoundError: unknown product
        """
        product = await self.repository.get_by_id_or_raise(product_id)
        parts = [
            product.name,
            product.description,
            product.component_type.value if product.component_type else None,
        ]
        query_text = " ".join(part.strip() for part in parts if part and part.strip())

        options = SearchOptions(top_k=top_k or settings.search_top_k, mode=SearchMode.VECTOR)
        return await self._search(query_text, (), options, exclude_product_id=product_id)

    async def embed_query(self, text: str, images: Sequence[str]) -> Vector:
        """
        Combined query vector with the same weight policy as documents.

        Images that fail to embed are skipped while something else remains.

        Raises:
            InvalidQueryError: nothing could be embedded
        """
        vectors: list[Vector] = []
        if text:
            vectors.append(await self.encoder.embed_text(text))

        image_vectors: list[Vector] = []
        last_error: EncodingError | None = None
        for index, source in enumerate(images):
            try:
                image_vectors.append(await self.encoder.embed_image(source))
            except EncodingError as exc:
                last_error = exc
                logger.warning("query_image_skipped", image_index=index, error=str(exc))

        if not vectors and not image_vectors:
            if last_error is not None:
                raise InvalidQueryError(
                    f"None of the query images could be used: {last_error}"
                ) from last_error
            raise InvalidQueryError("Search query must contain text or at least one image")

        weights = self.weight_policy.query_weights(has_text=bool(vectors), image_count=len(image_vectors))
        return combine(vectors + image_vectors, weights)

    # Internal helpers -------------------------------------------------

    async def _search(
        self,
        query_text: str | None,
        query_images: Sequence[str],
        options: SearchOptions,
        *,
        exclude_product_id: str | None = None,
    ) -> SearchResponse:
        text = (query_text or "").strip()
        images = [image for image in query_images if image and image.strip()]
        if not text and not images:
            raise InvalidQueryError("Search query must contain text or at least one image")
        if options.mode is SearchMode.KEYWORD and not text:
            raise InvalidQueryError("Keyword search needs query text")

        top_k = min(options.top_k, self.max_top_k)
        store_filter = StoreFilter(
            embedding_type=EmbeddingType.COMBINED,
            embedding_method=self.encoder.method,
            category_id=options.filters.category_id,
            component_type=options.filters.component_type.value if options.filters.component_type else None,
            exclude_product_id=exclude_product_id,
        )
        candidate_count = top_k * self.candidate_multiplier

        try:
            ranked, score_type = await self._rank(text, images, options.mode, candidate_count, store_filter)
        except VectorStoreError as exc:
            return await self._fallback(text, options, top_k, exclude_product_id, reason=str(exc))
        except EncodingError as exc:
            if not text:
                raise
            return await self._fallback(text, options, top_k, exclude_product_id, reason=str(exc))

        results = await self._hydrate(ranked, score_type, options.filters, top_k, exclude_product_id)
        logger.info(
            "product_search_completed",
            mode=options.mode.value,
            has_text=bool(text),
            image_count=len(images),
            candidates=len(ranked),
            results=len(results),
        )
        return SearchResponse(
            query=text or None,
            mode=options.mode,
            degraded=False,
            total=len(results),
            results=results,
        )

    async def _rank(
        self,
        text: str,
        images: Sequence[str],
        mode: SearchMode,
        candidate_count: int,
        store_filter: StoreFilter,
    ) -> tuple[list[RankedProduct], ScoreType]:
        if mode is SearchMode.KEYWORD:
            hits = await self.store.query_keywords(text, candidate_count, store_filter)
            return deduplicate_product_results(hits), ScoreType.KEYWORD

        query_vector = await self.embed_query(text, images)
        vector_ranked = deduplicate_product_results(
            await self.store.query_vector(query_vector, candidate_count, store_filter)
        )
        if mode is SearchMode.VECTOR or not text:
            return vector_ranked, ScoreType.VECTOR_SIMILARITY

        keyword_ranked = deduplicate_product_results(
            await self.store.query_keywords(text, candidate_count, store_filter)
        )
        fused = reciprocal_rank_fusion(
            [
                [item.product_id for item in vector_ranked],
                [item.product_id for item in keyword_ranked],
            ],
            k=self.rrf_k,
        )
        return fused, ScoreType.RRF

    async def _hydrate(
        self,
        ranked: list[RankedProduct],
        score_type: ScoreType,
        filters: SearchFilters,
        top_k: int,
        exclude_product_id: str | None,
    ) -> list[SearchResultItem]:
        products = await self.repository.get_by_ids([item.product_id for item in ranked])
        product_map = {product.id: product for product in products}
        product_filters = self._to_product_filters(filters)

        results: list[SearchResultItem] = []
        for item in ranked:
            product = product_map.get(item.product_id)
            if product is None:
                # index drift: record outlived its product
                logger.debug("search_hit_without_product", product_id=item.product_id)
                continue
            if product.id == exclude_product_id or not product_filters.matches(product):
                continue
            results.append(self._to_result(product, item.score, score_type))
            if len(results) >= top_k:
                break
        return results

    async def _fallback(
        self,
        text: str,
        options: SearchOptions,
        top_k: int,
        exclude_product_id: str | None,
        *,
        reason: str,
    ) -> SearchResponse:
        logger.warning("search_degraded_fallback", query=text, reason=reason)
        metrics_counter("search_fallback")

        products: Sequence[Product] = []
        if text:
            products = await self.repository.search_by_name(
                text,
                limit=top_k,
                filters=self._to_product_filters(options.filters),
                exclude_id=exclude_product_id,
            )

        results = [self._to_result(product, 1.0, ScoreType.FALLBACK) for product in products]
        return SearchResponse(
            query=text or None,
            mode=options.mode,
            degraded=True,
            total=len(results),
            results=results,
        )

    @staticmethod
    def _to_product_filters(filters: SearchFilters) -> ProductFilters:
        return ProductFilters(
            category_id=filters.category_id,
            component_type=filters.component_type,
            min_price=filters.min_price,
            max_price=filters.max_price,
        )

    @staticmethod
    def _to_result(product: Product, score: float, score_type: ScoreType) -> SearchResultItem:
        return SearchResultItem(
            product_id=product.id,
            score=score,
            score_type=score_type,
            product=ProductResponse.model_validate(product),
        )
