from __future__ import annotations

"""Read-only context providers: vector search, chat history and system template."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from src.rag.errors import ConfigurationError, ContextFetchError
from src.rag.http import get_json
from src.rag.types import SearchResult

logger = logging.getLogger(__name__)


class SearchableStore(Protocol):
    def search(
        self,
        query: str,
        top_k: int = 4,
        filters: dict[str, Any] | None = None,
        min_score: float = 0.0,
    ) -> list[SearchResult]:
        ...


def reorder_history(turns: list[str]) -> list[str]:
    """Turn a newest-first feed into display order.

    The feed is reversed, then every adjacent pair is swapped, so each pair is
    emitted newer turn first. An unpaired trailing turn is dropped.
    """
    ordered = list(reversed(turns))
    swapped: list[str] = []
    for index in range(0, len(ordered) - 1, 2):
        swapped.append(ordered[index + 1])
        swapped.append(ordered[index])
    return swapped


@dataclass
class VectorContextProvider:
    """Fetch knowledge-base passages owned by an assistant."""
    vectorstore: SearchableStore
    top_k: int = 4
    min_score: float = 0.0

    async def fetch(self, enabled: bool, assistant_id: str, query: str) -> str:
        if not enabled:
            return ""
        filters = {"assistantId": assistant_id}
        try:
            results = await asyncio.to_thread(
                self.vectorstore.search,
                query,
                top_k=self.top_k,
                filters=filters,
                min_score=self.min_score,
            )
        except Exception as exc:
            raise ContextFetchError(f"Vector search failed: {exc}") from exc
        texts = [result.document.content for result in results]
        logger.info(
            "vector_context_fetched",
            extra={"assistant_id": assistant_id, "passages": len(texts)},
        )
        return "\n".join(texts)


@dataclass
class ChatHistoryProvider:
    """Fetch recent turns of a session from the history service."""
    base_url: str
    page_size: int = 30
    timeout: float = 10.0
    client: httpx.AsyncClient | None = None

    async def fetch(self, session_id: str) -> str:
        records = await self._fetch_records(session_id)
        turns = [
            f"{record.get('type') or ''}:{record.get('textContent') or ''}" for record in records
        ]
        return "\n".join(reorder_history(turns))

    async def _fetch_records(self, session_id: str) -> list[dict[str, Any]]:
        params = {
            "pageNo": "1",
            "pageSize": str(self.page_size),
            "aiSessionId": session_id,
            "column": "created_time",
        }
        try:
            data = await get_json(
                self.client,
                f"{self.base_url.rstrip('/')}/mgn/aiMessage/list",
                params=params,
                timeout=self.timeout,
            )
        except (httpx.HTTPError, ValueError) as exc:
            raise ContextFetchError(f"Chat history request failed: {exc}") from exc
        result = data.get("result") if isinstance(data, dict) else None
        records = result.get("records") if isinstance(result, dict) else None
        if not isinstance(records, list):
            raise ContextFetchError("Chat history response is missing result.records")
        return [record for record in records if isinstance(record, dict)]


@dataclass
class SystemTemplateProvider:
    """Resolve the system prompt template from the dictionary service."""
    base_url: str
    key: str = "SYSTEM_PROMPT_TEMPLATE"
    override: str | None = None
    timeout: float = 10.0
    client: httpx.AsyncClient | None = None

    async def fetch(self) -> str:
        if self.override:
            return self.override
        url = f"{self.base_url.rstrip('/')}/sys/dict/getDictText/sys_config/{self.key}"
        try:
            data = await get_json(self.client, url, timeout=self.timeout)
        except (httpx.HTTPError, ValueError) as exc:
            raise ContextFetchError(f"System template request failed: {exc}") from exc
        template = data.get("result") if isinstance(data, dict) else None
        if not isinstance(template, str) or not template.strip():
            raise ConfigurationError(f"System prompt template {self.key} is not configured")
        return template
