from __future__ import annotations

"""Milvus-backed vector store for assistant knowledge."""

import json
from dataclasses import dataclass
from typing import Any, Iterable

from src.rag.embeddings import EmbeddingConfigError, EmbeddingProvider
from src.rag.types import Document, SearchResult


class MilvusDependencyError(RuntimeError):
    """Raised when Milvus dependencies are missing."""
    pass


@dataclass
class MilvusConfig:
    """Configuration for Milvus connection and indexing."""
    uri: str
    token: str | None
    collection: str
    consistency: str
    index_type: str
    metric_type: str
    nlist: int
    nprobe: int
    hnsw_m: int
    hnsw_ef_construction: int
    hnsw_ef: int
    max_content_length: int = 65535


@dataclass
class MilvusVectorStore:
    """Milvus vector store with a JSON metadata field for owner filters."""
    embedder: EmbeddingProvider
    config: MilvusConfig

    def __post_init__(self) -> None:
        """Connect to Milvus and ensure collection exists."""
        try:
            from pymilvus import connections
        except ImportError as exc:
            raise MilvusDependencyError("pymilvus is required for MilvusVectorStore") from exc
        if self.embedder.dimension <= 0:
            raise EmbeddingConfigError(
                "Embedding dimension must be set before initializing MilvusVectorStore"
            )
        connections.connect(alias="default", uri=self.config.uri, token=self.config.token)
        self.ensure_collection()

    def ensure_collection(self) -> None:
        """Create collection schema and index when missing."""
        from pymilvus import Collection, CollectionSchema, DataType, FieldSchema, utility

        if utility.has_collection(self.config.collection):
            self.collection = Collection(
                self.config.collection, consistency_level=self.config.consistency
            )
            return

        fields = [
            FieldSchema(name="doc_id", dtype=DataType.VARCHAR, is_primary=True, max_length=256),
            FieldSchema(
                name="content",
                dtype=DataType.VARCHAR,
                max_length=self.config.max_content_length,
            ),
            FieldSchema(name="metadata", dtype=DataType.JSON),
            FieldSchema(name="embedding", dtype=DataType.FLOAT_VECTOR, dim=self.embedder.dimension),
        ]
        schema = CollectionSchema(fields=fields, description="Assistant knowledge chunks")
        self.collection = Collection(
            self.config.collection,
            schema,
            consistency_level=self.config.consistency,
        )
        self.collection.create_index(field_name="embedding", index_params=self._index_params())

    def _index_params(self) -> dict[str, Any]:
        if self.config.index_type.upper() == "HNSW":
            return {
                "index_type": "HNSW",
                "metric_type": self.config.metric_type,
                "params": {
                    "M": self.config.hnsw_m,
                    "efConstruction": self.config.hnsw_ef_construction,
                },
            }
        return {
            "index_type": self.config.index_type,
            "metric_type": self.config.metric_type,
            "params": {"nlist": self.config.nlist},
        }

    def _search_params(self) -> dict[str, Any]:
        if self.config.index_type.upper() == "HNSW":
            return {"metric_type": self.config.metric_type, "params": {"ef": self.config.hnsw_ef}}
        return {"metric_type": self.config.metric_type, "params": {"nprobe": self.config.nprobe}}

    def add_documents(self, documents: Iterable[Document]) -> int:
        """Insert documents with dense embeddings."""
        rows: list[dict[str, Any]] = []
        for document in documents:
            content = document.content[: self.config.max_content_length]
            rows.append(
                {
                    "doc_id": document.doc_id,
                    "content": content,
                    "metadata": document.metadata or {},
                    "embedding": self.embedder.embed(content),
                }
            )
        if not rows:
            return 0
        self.collection.insert(rows)
        self.collection.flush()
        return len(rows)

    def search(
        self,
        query: str,
        top_k: int = 4,
        filters: dict[str, Any] | None = None,
        min_score: float = 0.0,
    ) -> list[SearchResult]:
        """Dense search restricted by metadata equality filters."""
        if top_k <= 0:
            return []
        query_vector = self.embedder.embed(query)
        self.collection.load()
        results = self.collection.search(
            data=[query_vector],
            anns_field="embedding",
            param=self._search_params(),
            limit=top_k,
            expr=self._build_filter_expr(filters),
            output_fields=["doc_id", "content", "metadata"],
        )
        search_results: list[SearchResult] = []
        for hit in results[0]:
            score = float(hit.score)
            if score < min_score:
                continue
            entity = hit.entity
            document = Document(
                doc_id=entity.get("doc_id"),
                content=entity.get("content"),
                metadata=self._deserialize_metadata(entity.get("metadata")),
            )
            search_results.append(SearchResult(document=document, score=score))
        return search_results

    def find(self, filters: dict[str, Any] | None, limit: int = 1000) -> list[Document]:
        """Return documents matching the filters, without ranking."""
        self.collection.load()
        rows = self.collection.query(
            expr=self._build_filter_expr(filters) or 'doc_id != ""',
            output_fields=["doc_id", "content", "metadata"],
            limit=limit,
        )
        return [
            Document(
                doc_id=row.get("doc_id"),
                content=row.get("content", ""),
                metadata=self._deserialize_metadata(row.get("metadata")),
            )
            for row in rows
        ]

    def delete(self, doc_ids: Iterable[str]) -> int:
        """Delete documents by primary key."""
        ids = list(doc_ids)
        if not ids:
            return 0
        result = self.collection.delete(f"doc_id in {json.dumps(ids)}")
        self.collection.flush()
        try:
            return int(result.delete_count)
        except (AttributeError, TypeError, ValueError):
            return len(ids)

    def _deserialize_metadata(self, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        if isinstance(value, dict):
            return value
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return {"raw": value}
        return {"raw": value}

    def _build_filter_expr(self, filters: dict[str, Any] | None) -> str | None:
        """Build a Milvus boolean expression from equality filters."""
        if not filters:
            return None
        clauses = [
            f"metadata[{json.dumps(key)}] == {json.dumps(str(value))}"
            for key, value in filters.items()
        ]
        return " and ".join(clauses)
