"""
Typesense Embedding Store implementation.

Talks to the Typesense REST API with httpx. One collection holds every
embedding record; vector queries go through ``/multi_search`` so long query
vectors never hit URL length limits.
"""

from __future__ import annotations

from typing import Any, Iterable
from urllib.parse import quote

import httpx

from app.core.config import settings
from app.core.exceptions import (
    DimensionMismatchError,
    StoreUnavailableError,
    VectorIndexError,
    VectorSearchError,
    VectorStoreError,
)
from app.core.logging import get_logger
from app.vectorstore.protocol import StoreHit
from app.vectorstore.schemas import (
    EmbeddingRecord,
    EmbeddingType,
    StoreFilter,
    well_known_record_ids,
)

logger = get_logger(__name__)

KEYWORD_QUERY_BY = "searchableText,name,description,componentType"


def collection_schema(name: str, dimension: int) -> dict[str, Any]:
    return {
        "name": name,
        "fields": [
            {"name": "productId", "type": "string", "facet": True},
            {"name": "name", "type": "string"},
            {"name": "description", "type": "string", "optional": True},
            {"name": "price", "type": "float", "facet": True, "optional": True},
            {"name": "componentType", "type": "string", "facet": True, "optional": True},
            {"name": "categoryId", "type": "string", "facet": True, "optional": True},
            {"name": "embeddingType", "type": "string", "facet": True},
            {"name": "embeddingMethod", "type": "string", "facet": True},
            {"name": "imageIndex", "type": "int32", "facet": True, "optional": True},
            {"name": "hasImages", "type": "bool", "facet": True, "optional": True},
            {"name": "imageCount", "type": "int32", "facet": True, "optional": True},
            {"name": "embedding", "type": "float[]", "num_dim": dimension},
            {"name": "searchableText", "type": "string", "optional": True},
            {"name": "timestamp", "type": "int64", "sort": True},
        ],
        "default_sorting_field": "timestamp",
    }


def _quote_value(value: str) -> str:
    # backticks let values contain spaces, commas and operators
    return "`" + value.replace("`", "") + "`"


def build_filter_by(store_filter: StoreFilter | None) -> str | None:
    """Translate a StoreFilter into Typesense ``filter_by`` syntax."""

    if store_filter is None:
        return None

    clauses: list[str] = []
    if store_filter.embedding_type is not None:
        clauses.append(f"embeddingType:={store_filter.embedding_type.value}")
    if store_filter.embedding_method is not None:
        clauses.append(f"embeddingMethod:={_quote_value(store_filter.embedding_method)}")
    if store_filter.product_id is not None:
        clauses.append(f"productId:={_quote_value(store_filter.product_id)}")
    if store_filter.category_id is not None:
        clauses.append(f"categoryId:={_quote_value(store_filter.category_id)}")
    if store_filter.component_type is not None:
        clauses.append(f"componentType:={_quote_value(store_filter.component_type)}")
    if store_filter.exclude_product_id is not None:
        clauses.append(f"productId:!={_quote_value(store_filter.exclude_product_id)}")

    return " && ".join(clauses) or None


def record_to_document(record: EmbeddingRecord) -> dict[str, Any]:
    document: dict[str, Any] = {
        "id": record.record_id,
        "productId": record.product_id,
        "name": record.name,
        "description": record.description,
        "price": record.price,
        "componentType": record.component_type,
        "categoryId": record.category_id,
        "embeddingType": record.embedding_type.value,
        "embeddingMethod": record.embedding_method,
        "imageIndex": record.image_index,
        "hasImages": record.has_images,
        "imageCount": record.image_count,
        "embedding": record.vector,
        "searchableText": record.searchable_text,
        "timestamp": record.timestamp,
    }
    return {key: value for key, value in document.items() if value is not None}


def document_to_record(document: dict[str, Any]) -> EmbeddingRecord:
    return EmbeddingRecord(
        record_id=document["id"],
        product_id=document["productId"],
        vector=document.get("embedding") or [],
        embedding_type=EmbeddingType(document["embeddingType"]),
        embedding_method=document["embeddingMethod"],
        image_index=document.get("imageIndex"),
        name=document.get("name", ""),
        description=document.get("description"),
        price=document.get("price"),
        component_type=document.get("componentType"),
        category_id=document.get("categoryId"),
        has_images=document.get("hasImages", False),
        image_count=document.get("imageCount", 0),
        searchable_text=document.get("searchableText", ""),
        timestamp=document.get("timestamp", 0),
    )


class TypesenseEmbeddingStore:
    """Embedding store on a Typesense collection."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        collection: str | None = None,
        dimension: int | None = None,
        timeout_seconds: float | None = None,
        max_image_slots: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.collection = collection or settings.typesense_collection
        self.dimension = dimension or settings.embedding_dimension
        self.max_image_slots = max_image_slots or settings.max_image_slots
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.typesense_base_url,
            headers={"X-TYPESENSE-API-KEY": api_key or settings.typesense_api_key},
            timeout=timeout_seconds or settings.typesense_timeout_seconds,
        )

    async def initialize(self) -> None:
        existing = await self._request(
            "GET", f"/collections/{self.collection}", allow_404=True, error_cls=VectorIndexError
        )
        if existing is not None:
            return

        await self._request(
            "POST",
            "/collections",
            json=collection_schema(self.collection, self.dimension),
            error_cls=VectorIndexError,
        )
        logger.info("typesense_collection_created", collection=self.collection, dimension=self.dimension)

    async def upsert(self, record: EmbeddingRecord) -> None:
        if len(record.vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(record.vector), context=record.record_id)

        await self._request(
            "POST",
            self._documents_path(),
            params={"action": "upsert"},
            json=record_to_document(record),
            error_cls=VectorIndexError,
        )
        logger.debug("typesense_record_upserted", record_id=record.record_id)

    async def delete_by_id(self, record_id: str) -> bool:
        result = await self._request(
            "DELETE",
            f"{self._documents_path()}/{quote(record_id, safe='')}",
            allow_404=True,
            error_cls=VectorIndexError,
        )
        return result is not None

    async def delete_all_for_product(
        self,
        product_id: str,
        known_record_ids: Iterable[str] = (),
    ) -> int:
        candidates = dict.fromkeys(well_known_record_ids(product_id, self.max_image_slots))
        candidates.update(dict.fromkeys(known_record_ids))

        deleted = 0
        for record_id in candidates:
            if await self.delete_by_id(record_id):
                deleted += 1

        # sweep anything the id list missed
        result = await self._request(
            "DELETE",
            self._documents_path(),
            params={"filter_by": build_filter_by(StoreFilter(product_id=product_id))},
            allow_404=True,
            error_cls=VectorIndexError,
        )
        if result:
            deleted += int(result.get("num_deleted", 0))

        logger.debug("typesense_product_records_deleted", product_id=product_id, deleted=deleted)
        return deleted

    async def query_vector(
        self,
        vector: list[float],
        top_k: int,
        store_filter: StoreFilter | None = None,
    ) -> list[StoreHit]:
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector), context="query vector")
        if top_k <= 0:
            return []

        search: dict[str, Any] = {
            "collection": self.collection,
            "q": "*",
            "vector_query": f"embedding:([{','.join(f'{float(v):.8f}' for v in vector)}], k:{top_k})",
            "per_page": top_k,
            "exclude_fields": "embedding",
        }
        filter_by = build_filter_by(store_filter)
        if filter_by:
            search["filter_by"] = filter_by

        body = await self._request(
            "POST", "/multi_search", json={"searches": [search]}, error_cls=VectorSearchError
        )
        results = (body or {}).get("results") or [{}]
        result = results[0]
        if "error" in result:
            raise VectorSearchError(f"Typesense vector query failed: {result['error']}")

        hits = [
            StoreHit(
                record=document_to_record(hit["document"]),
                score=1.0 - float(hit.get("vector_distance", 1.0)),
            )
            for hit in result.get("hits", [])
        ]
        return sorted(hits, key=lambda hit: hit.score, reverse=True)

    async def query_keywords(
        self,
        text: str,
        top_k: int,
        store_filter: StoreFilter | None = None,
    ) -> list[StoreHit]:
        if not text or not text.strip() or top_k <= 0:
            return []

        params: dict[str, Any] = {
            "q": text.strip(),
            "query_by": KEYWORD_QUERY_BY,
            "per_page": top_k,
            "exclude_fields": "embedding",
        }
        filter_by = build_filter_by(store_filter)
        if filter_by:
            params["filter_by"] = filter_by

        body = await self._request(
            "GET", f"{self._documents_path()}/search", params=params, error_cls=VectorSearchError
        )
        raw_hits = (body or {}).get("hits", [])
        best = max((float(hit.get("text_match", 0)) for hit in raw_hits), default=0.0)

        # text_match is an unbounded integer; scale by the best hit
        return [
            StoreHit(
                record=document_to_record(hit["document"]),
                score=float(hit.get("text_match", 0)) / best if best else 0.0,
            )
            for hit in raw_hits
        ]

    async def get(self, record_id: str) -> EmbeddingRecord | None:
        document = await self._request(
            "GET",
            f"{self._documents_path()}/{quote(record_id, safe='')}",
            allow_404=True,
            error_cls=VectorSearchError,
        )
        return document_to_record(document) if document else None

    async def list_record_ids(self, product_id: str) -> list[str]:
        body = await self._request(
            "GET",
            f"{self._documents_path()}/search",
            params={
                "q": "*",
                "filter_by": build_filter_by(StoreFilter(product_id=product_id)),
                "include_fields": "id",
                "per_page": 250,
            },
            error_cls=VectorSearchError,
        )
        return sorted(hit["document"]["id"] for hit in (body or {}).get("hits", []))

    async def health_check(self) -> bool:
        try:
            body = await self._request("GET", "/health", error_cls=VectorSearchError)
        except VectorStoreError as exc:
            logger.warning("typesense_health_check_failed", error=str(exc))
            return False
        return bool((body or {}).get("ok"))

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # Internal helpers -------------------------------------------------

    def _documents_path(self) -> str:
        return f"/collections/{self.collection}/documents"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        allow_404: bool = False,
        error_cls: type[VectorStoreError] = VectorStoreError,
    ) -> Any:
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as exc:
            logger.warning("typesense_timeout", method=method, path=path)
            raise StoreUnavailableError(f"Typesense timed out on {method} {path}") from exc
        except httpx.TransportError as exc:
            logger.warning("typesense_unreachable", method=method, path=path, error=str(exc))
            raise StoreUnavailableError(f"Typesense unreachable: {exc}") from exc

        if response.status_code == 404 and allow_404:
            return None
        if response.status_code >= 500:
            raise StoreUnavailableError(
                f"Typesense returned HTTP {response.status_code} on {method} {path}"
            )
        if response.status_code >= 400:
            raise error_cls(
                f"Typesense rejected {method} {path}: HTTP {response.status_code} {response.text}"
            )

        if not response.content:
            return {}
        return response.json()
