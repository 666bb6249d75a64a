from __future__ import annotations

"""Embedding providers used by the knowledge vector store."""

import hashlib
import math
import re
from dataclasses import dataclass
from typing import Protocol

import httpx

from src.rag.http import resolve_timeout

_TOKEN_RE = re.compile(r"\w+", flags=re.UNICODE)


class EmbeddingError(RuntimeError):
    """Raised when embeddings fail or are invalid."""
    pass


class EmbeddingConfigError(RuntimeError):
    """Raised when embedding configuration is invalid."""
    pass


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""
    dimension: int

    def embed(self, text: str) -> list[float]:
        """Return an embedding vector for the provided text."""
        raise NotImplementedError


def validate_vector(vector: list[float], dimension: int) -> list[float]:
    """Validate and normalize embedding vectors."""
    if len(vector) != dimension:
        raise EmbeddingError(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if not isinstance(value, (int, float)):
            raise EmbeddingError("Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingError("Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


@dataclass
class HashEmbedder:
    """Deterministic hash-based embedder for testing or offline use."""
    dimension: int = 256

    def embed(self, text: str) -> list[float]:
        """Embed text using token hashing and L2 normalization."""
        tokens = _TOKEN_RE.findall(text.lower())
        vector = [0.0] * self.dimension
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            vector[digest[0] % self.dimension] += 1.0
        return validate_vector(self._l2_normalize(vector), self.dimension)

    def _l2_normalize(self, vector: list[float]) -> list[float]:
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


@dataclass
class OllamaEmbedder:
    """Embedding provider backed by the Ollama embed API."""
    base_url: str
    model: str
    dimension: int
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.model:
            raise EmbeddingConfigError("OLLAMA_EMBEDDING_MODEL is required for OllamaEmbedder")
        if self.dimension <= 0:
            raise EmbeddingConfigError("EMBEDDING_DIMENSION must be set for Ollama embeddings")

    def embed(self, text: str) -> list[float]:
        """Embed text with a blocking call; callers run this off the event loop."""
        payload = {"model": self.model, "input": text}
        try:
            with httpx.Client(timeout=resolve_timeout(self.timeout)) as client:
                response = client.post(f"{self.base_url.rstrip('/')}/api/embed", json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise EmbeddingError(str(exc)) from exc
        embeddings = data.get("embeddings") if isinstance(data, dict) else None
        if not embeddings or not isinstance(embeddings[0], list):
            raise EmbeddingError("Ollama embedding response missing embeddings")
        return validate_vector(embeddings[0], self.dimension)


def build_embedder(
    provider: str,
    *,
    dimension: int,
    ollama_base_url: str,
    ollama_model: str,
) -> HashEmbedder | OllamaEmbedder:
    """Factory for embedding providers based on configuration."""
    normalized = provider.strip().lower()
    if normalized in {"", "hash"}:
        if dimension <= 0:
            raise EmbeddingConfigError("EMBEDDING_DIMENSION must be greater than zero")
        return HashEmbedder(dimension=dimension)
    if normalized == "ollama":
        return OllamaEmbedder(base_url=ollama_base_url, model=ollama_model, dimension=dimension)
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")
