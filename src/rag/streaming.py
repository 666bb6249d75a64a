from __future__ import annotations

"""Paced server-sent-event rendering of model results."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable

from src.rag.llm import NO_CONTENT_ERROR
from src.rag.types import ModelResult

NO_METADATA = "No metadata available"


@dataclass(frozen=True)
class Event:
    """One SSE frame: an event name plus a JSON payload."""
    name: str
    data: dict[str, Any]

    def encode(self) -> str:
        payload = json.dumps(self.data, ensure_ascii=False, default=str)
        return f"event: {self.name}\ndata: {payload}\n\n"


def error_event(message: str) -> Event:
    return Event(name="error", data={"error": message})


@dataclass
class ResponseStreamer:
    """Re-emit a complete result as one event per character, then its metadata.

    The pause before each character is awaited per request, so concurrent
    streams never block one another.
    """
    delay_seconds: float = 0.05
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    async def stream(self, result: ModelResult) -> AsyncIterator[Event]:
        if not result.text:
            yield error_event(NO_CONTENT_ERROR)
            return
        for char in result.text:
            if self.delay_seconds > 0:
                await self.sleep(self.delay_seconds)
            yield Event(name="message", data={"content": char})
        metadata: Any = result.metadata if result.metadata is not None else NO_METADATA
        yield Event(name="metadata", data={"metadata": metadata})
