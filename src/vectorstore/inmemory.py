from __future__ import annotations

"""In-memory vector store for local runs and tests."""

import math
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable

from src.rag.embeddings import EmbeddingProvider
from src.rag.types import Document, SearchResult


@dataclass
class InMemoryVectorStore:
    """Cosine-similarity store with equality metadata filters."""
    embedder: EmbeddingProvider
    documents: list[Document] = field(default_factory=list)
    vectors: list[list[float]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def add_documents(self, documents: Iterable[Document]) -> int:
        """Embed and store documents."""
        embedded = [(document, self.embedder.embed(document.content)) for document in documents]
        with self._lock:
            for document, vector in embedded:
                self.documents.append(document)
                self.vectors.append(vector)
        return len(embedded)

    def search(
        self,
        query: str,
        top_k: int = 4,
        filters: dict[str, Any] | None = None,
        min_score: float = 0.0,
    ) -> list[SearchResult]:
        """Rank stored documents against the query, keeping scores >= min_score."""
        if top_k <= 0:
            return []
        query_vector = self.embedder.embed(query)
        with self._lock:
            pairs = list(zip(self.documents, self.vectors))
        scored = [
            SearchResult(document=doc, score=self._cosine_similarity(query_vector, vec))
            for doc, vec in pairs
            if self._matches(doc.metadata, filters)
        ]
        scored = [result for result in scored if result.score >= min_score]
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored[:top_k]

    def find(self, filters: dict[str, Any] | None, limit: int = 1000) -> list[Document]:
        """Return stored documents matching the filters, without ranking."""
        with self._lock:
            matched = [doc for doc in self.documents if self._matches(doc.metadata, filters)]
        return matched[:limit]

    def delete(self, doc_ids: Iterable[str]) -> int:
        """Delete documents by id."""
        targets = set(doc_ids)
        if not targets:
            return 0
        with self._lock:
            kept = [
                (doc, vector)
                for doc, vector in zip(self.documents, self.vectors)
                if doc.doc_id not in targets
            ]
            removed = len(self.documents) - len(kept)
            self.documents = [doc for doc, _ in kept]
            self.vectors = [vector for _, vector in kept]
        return removed

    def _cosine_similarity(self, a: list[float], b: list[float]) -> float:
        dot = sum(x * y for x, y in zip(a, b))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(y * y for y in b))
        if norm_a == 0.0 or norm_b == 0.0:
            return 0.0
        return dot / (norm_a * norm_b)

    def _matches(self, metadata: dict[str, Any], filters: dict[str, Any] | None) -> bool:
        if not filters:
            return True
        return all(str(metadata.get(key)) == str(value) for key, value in filters.items())
