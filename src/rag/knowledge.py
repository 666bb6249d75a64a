from __future__ import annotations

"""Owner-scoped knowledge base operations: upload, delete and query."""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, Protocol

from src.loaders.chunking import TokenTextSplitter
from src.rag.types import Document, SearchResult

logger = logging.getLogger(__name__)

OWNER_KEY = "assistantId"


class KnowledgeStore(Protocol):
    def add_documents(self, documents: Iterable[Document]) -> int:
        ...

    def search(
        self,
        query: str,
        top_k: int = 4,
        filters: dict[str, Any] | None = None,
        min_score: float = 0.0,
    ) -> list[SearchResult]:
        ...

    def find(self, filters: dict[str, Any] | None, limit: int = 1000) -> list[Document]:
        ...

    def delete(self, doc_ids: Iterable[str]) -> int:
        ...


class DocumentFetcher(Protocol):
    async def fetch(self, url: str) -> Document:
        ...


@dataclass
class KnowledgeBase:
    vectorstore: KnowledgeStore
    fetcher: DocumentFetcher
    splitter: TokenTextSplitter
    scan_limit: int = 1000
    query_min_score: float = 0.5

    async def upload(self, assistant_id: str, file_urls: str) -> int:
        """Replace an owner's documents with chunks of the given comma-separated URLs."""
        removed = await self.delete(assistant_id)
        chunks: list[Document] = []
        for url in file_urls.split(","):
            url = url.strip()
            if not url:
                continue
            document = await self.fetcher.fetch(url)
            document = replace(document, doc_id=f"{assistant_id}-{document.doc_id}")
            for chunk in self.splitter.split_document(document):
                metadata = dict(chunk.metadata)
                metadata[OWNER_KEY] = assistant_id
                chunks.append(replace(chunk, metadata=metadata))
        added = 0
        if chunks:
            added = await asyncio.to_thread(self.vectorstore.add_documents, chunks)
        logger.info(
            "knowledge_uploaded",
            extra={"assistant_id": assistant_id, "removed": removed, "added": added},
        )
        return added

    async def delete(self, assistant_id: str) -> int:
        """Delete every document owned by the assistant."""
        existing = await asyncio.to_thread(
            self.vectorstore.find, {OWNER_KEY: assistant_id}, self.scan_limit
        )
        doc_ids = [document.doc_id for document in existing]
        if not doc_ids:
            return 0
        removed = await asyncio.to_thread(self.vectorstore.delete, doc_ids)
        logger.info(
            "knowledge_deleted",
            extra={"assistant_id": assistant_id, "removed": removed},
        )
        return removed

    async def query(
        self, query: str | None, assistant_id: str | None, top_k: int = 5
    ) -> list[Document]:
        """Search an owner's documents; a blank query lists them without ranking."""
        query = (query or "").strip()
        assistant_id = (assistant_id or "").strip()
        filters = {OWNER_KEY: assistant_id} if assistant_id else None
        if not query:
            if not filters:
                return []
            return await asyncio.to_thread(self.vectorstore.find, filters, top_k)
        results = await asyncio.to_thread(
            self.vectorstore.search,
            query,
            top_k=top_k,
            filters=filters,
            min_score=self.query_min_score,
        )
        logger.info(
            "knowledge_query",
            extra={"assistant_id": assistant_id, "results": len(results)},
        )
        return [result.document for result in results]
