from __future__ import annotations

import hashlib
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx

from src.loaders.files import load_bytes
from src.rag.errors import LoaderError
from src.rag.http import client_scope
from src.rag.types import Document


@dataclass(frozen=True)
class RemoteDocumentFetcher:
    timeout: float = 30.0
    max_bytes: int = 50 * 1024 * 1024
    client: httpx.AsyncClient | None = None

    async def fetch(self, url: str) -> Document:
        parsed = urlparse(url)
        if parsed.scheme not in {"http", "https"}:
            raise LoaderError(f"Unsupported file URL: {url}")
        try:
            async with client_scope(self.client, self.timeout) as client:
                response = await client.get(url, follow_redirects=True)
                response.raise_for_status()
                content = response.content
                content_type = response.headers.get("content-type", "")
        except httpx.HTTPError as exc:
            raise LoaderError(f"Failed to fetch {url}: {exc}") from exc
        if self.max_bytes and len(content) > self.max_bytes:
            raise LoaderError("File exceeds maximum size limit")
        document = load_bytes(content, doc_id=_hash_text(url)[:16], source=url, content_type=content_type)
        metadata = dict(document.metadata)
        metadata.update({"source_name": parsed.path.rsplit("/", 1)[-1] or parsed.netloc})
        return Document(doc_id=document.doc_id, content=document.content, metadata=metadata)


def _hash_text(text_value: str) -> str:
    return hashlib.sha256(text_value.encode("utf-8")).hexdigest()
