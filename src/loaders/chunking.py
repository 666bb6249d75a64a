from __future__ import annotations

"""Token-based chunking for knowledge ingestion."""

from dataclasses import dataclass, field
from typing import Any, Protocol

import tiktoken

from src.rag.types import Document

_BREAK_CHARS = (".", "?", "!", "\n")


class Encoding(Protocol):
    def encode(self, text: str) -> list[int]:
        ...

    def decode(self, tokens: list[int]) -> str:
        ...


@dataclass
class TokenTextSplitter:
    """Split text into token windows cut back to the last sentence break.

    Each window holds ``chunk_tokens`` tokens. When the window's last break
    character sits past ``min_chunk_chars`` the chunk ends there and the next
    window starts right after it. Chunks no longer than ``min_embed_chars`` are
    dropped, and at most ``max_chunks`` windows are taken before the remainder
    becomes the final chunk.
    """
    chunk_tokens: int = 200
    min_chunk_chars: int = 200
    min_embed_chars: int = 5
    max_chunks: int = 10000
    keep_separator: bool = True
    encoding_name: str = "cl100k_base"
    encoding: Encoding | None = field(default=None, repr=False)

    def _encoding(self) -> Encoding:
        if self.encoding is None:
            self.encoding = tiktoken.get_encoding(self.encoding_name)
        return self.encoding

    def split_text(self, text: str) -> list[str]:
        if not text or not text.strip():
            return []
        encoding = self._encoding()
        tokens = encoding.encode(text)
        chunks: list[str] = []
        window_count = 0
        while tokens and window_count < self.max_chunks:
            window = tokens[: self.chunk_tokens]
            chunk_text = encoding.decode(window)
            if not chunk_text.strip():
                tokens = tokens[len(window):]
                continue
            cut = max(chunk_text.rfind(char) for char in _BREAK_CHARS)
            if cut != -1 and cut > self.min_chunk_chars:
                chunk_text = chunk_text[: cut + 1]
            candidate = self._finish(chunk_text)
            if len(candidate) > self.min_embed_chars:
                chunks.append(candidate)
            consumed = len(encoding.encode(chunk_text))
            tokens = tokens[max(1, consumed):]
            window_count += 1
        if tokens:
            remainder = self._finish(encoding.decode(tokens))
            if len(remainder) > self.min_embed_chars:
                chunks.append(remainder)
        return chunks

    def _finish(self, text: str) -> str:
        if self.keep_separator:
            return text.strip()
        return text.replace("\n", " ").strip()

    def split_document(self, document: Document) -> list[Document]:
        """Chunk a document, numbering chunk ids from 1 and recording chunk position."""
        chunks = self.split_text(document.content)
        total = len(chunks)
        documents: list[Document] = []
        for idx, chunk in enumerate(chunks, start=1):
            metadata: dict[str, Any] = dict(document.metadata)
            metadata.update({"chunk_index": idx, "chunk_count": total})
            documents.append(
                Document(doc_id=f"{document.doc_id}-{idx}", content=chunk, metadata=metadata)
            )
        return documents
