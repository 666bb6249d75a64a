from __future__ import annotations

"""Ollama chat backend and the model invoker with tool-call handling."""

from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Iterable, Protocol, TypeVar
import asyncio
import json
import logging

import httpx

from src.rag.errors import BackendError, EmptyResultError, FatalCancellation
from src.rag.http import client_scope
from src.rag.tools import ToolCatalog
from src.rag.types import AssembledPrompt, ChatRequest, ModelChunk, ModelResult

logger = logging.getLogger(__name__)

NO_CONTENT_ERROR = "No content received"

T = TypeVar("T")


class ChatBackend(Protocol):
    """Model backend contract: messages plus tools in, Ollama-shaped responses out."""
    model: str

    async def chat(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> dict[str, Any]:
        ...

    def chat_stream(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]
    ) -> AsyncIterator[dict[str, Any]]:
        ...


@dataclass(frozen=True)
class OllamaChatModel:
    """Chat backend over the Ollama /api/chat endpoint."""
    base_url: str
    model: str
    temperature: float = 0.7
    timeout: float = 0.0
    client: httpx.AsyncClient | None = None

    def _payload(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]], stream: bool
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": stream,
            "options": {"temperature": self.temperature},
        }
        if tools:
            payload["tools"] = tools
        return payload

    async def chat(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> dict[str, Any]:
        payload = self._payload(messages, tools, stream=False)
        try:
            async with client_scope(self.client, self.timeout) as client:
                response = await client.post(f"{self.base_url.rstrip('/')}/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise BackendError(str(exc) or exc.__class__.__name__) from exc
        if not isinstance(data, dict):
            raise BackendError("Invalid model response")
        return data

    async def chat_stream(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded NDJSON frames from a streaming chat call."""
        payload = self._payload(messages, tools, stream=True)
        try:
            async with client_scope(self.client, self.timeout) as client:
                async with client.stream(
                    "POST", f"{self.base_url.rstrip('/')}/api/chat", json=payload
                ) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        frame = json.loads(line)
                        if not isinstance(frame, dict):
                            raise BackendError("Invalid model stream frame")
                        if frame.get("error"):
                            raise BackendError(str(frame["error"]))
                        yield frame
        except (httpx.HTTPError, ValueError) as exc:
            raise BackendError(str(exc) or exc.__class__.__name__) from exc


def usage_metadata(data: dict[str, Any], model: str) -> dict[str, Any] | None:
    """Build usage metadata from an Ollama response, or None when it carries no counts."""
    prompt_tokens = data.get("prompt_eval_count")
    completion_tokens = data.get("eval_count")
    if prompt_tokens is None and completion_tokens is None:
        return None
    prompt_tokens = int(prompt_tokens or 0)
    completion_tokens = int(completion_tokens or 0)
    metadata: dict[str, Any] = {
        "promptTokens": prompt_tokens,
        "completionTokens": completion_tokens,
        "totalTokens": prompt_tokens + completion_tokens,
        "model": data.get("model") or model,
    }
    duration = data.get("total_duration")
    if isinstance(duration, int):
        metadata["durationMs"] = duration // 1_000_000
    return metadata


def apply_tool_override(
    request: ChatRequest, model: str, disabled_models: Iterable[str]
) -> ChatRequest:
    """Return a request with tools cleared when the model cannot call tools."""
    if model in set(disabled_models) and request.tools_requested:
        logger.info("tools_disabled_for_model", extra={"model": model})
        return request.without_tools()
    return request


async def collect(chunks: AsyncIterator[ModelChunk]) -> ModelResult:
    """Concatenate a stream into one result; metadata comes from the final chunk."""
    parts: list[str] = []
    metadata: dict[str, Any] | None = None
    async for chunk in chunks:
        parts.append(chunk.text)
        if chunk.metadata is not None:
            metadata = chunk.metadata
    return ModelResult(text="".join(parts), metadata=metadata)


@dataclass
class ModelInvoker:
    """Send assembled prompts to the backend, resolving tool calls between rounds."""
    backend: ChatBackend
    tools: ToolCatalog | None = None
    max_tool_rounds: int = 5

    async def invoke(self, prompt: AssembledPrompt, tools_enabled: bool = False) -> ModelResult:
        messages, tool_payload = await self._prepare(prompt, tools_enabled)
        for round_index in range(self.max_tool_rounds + 1):
            data = await self._guarded(self.backend.chat(messages, tool_payload))
            message = data.get("message")
            if not isinstance(message, dict):
                raise BackendError("Invalid model response: missing message")
            tool_calls = message.get("tool_calls") or []
            if tool_calls and tool_payload:
                self._check_round(round_index)
                await self._resolve_tool_calls(messages, message.get("content") or "", tool_calls)
                continue
            content = message.get("content")
            if not isinstance(content, str):
                raise BackendError("Invalid model response: missing content")
            if not content:
                raise EmptyResultError(NO_CONTENT_ERROR)
            return ModelResult(text=content, metadata=usage_metadata(data, self.backend.model))
        raise BackendError("Tool call rounds exhausted")

    async def invoke_stream(
        self, prompt: AssembledPrompt, tools_enabled: bool = False
    ) -> AsyncIterator[ModelChunk]:
        """Yield partial results; tool calls are resolved before the final answer streams.

        With tools attached, a round is buffered until it ends without tool calls,
        so text preceding a tool call never reaches the caller (as with `invoke`).
        """
        messages, tool_payload = await self._prepare(prompt, tools_enabled)
        for round_index in range(self.max_tool_rounds + 1):
            tool_calls: list[dict[str, Any]] = []
            assistant_text: list[str] = []
            final: dict[str, Any] = {}
            stream = self.backend.chat_stream(messages, tool_payload)
            try:
                while True:
                    try:
                        frame = await self._guarded(anext(stream))
                    except StopAsyncIteration:
                        break
                    message = frame.get("message") or {}
                    tool_calls.extend(message.get("tool_calls") or [])
                    text = message.get("content") or ""
                    if frame.get("done"):
                        final = frame
                    if not text:
                        continue
                    if tool_payload:
                        assistant_text.append(text)
                    else:
                        yield ModelChunk(text=text)
            finally:
                await stream.aclose()
            if tool_calls and tool_payload:
                self._check_round(round_index)
                await self._resolve_tool_calls(messages, "".join(assistant_text), tool_calls)
                continue
            if assistant_text:
                yield ModelChunk(text="".join(assistant_text))
            yield ModelChunk(text="", done=True, metadata=usage_metadata(final, self.backend.model))
            return
        raise BackendError("Tool call rounds exhausted")

    def _check_round(self, round_index: int) -> None:
        if round_index >= self.max_tool_rounds:
            raise BackendError("Tool call rounds exhausted")

    async def _prepare(
        self, prompt: AssembledPrompt, tools_enabled: bool
    ) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        if tools_enabled and self.tools is not None:
            prompt = prompt.with_tools(await self.tools.list_tools())
        messages = [message.to_payload() for message in prompt.messages]
        tool_payload = [tool.to_payload() for tool in prompt.options.tools]
        return messages, tool_payload

    async def _resolve_tool_calls(
        self,
        messages: list[dict[str, Any]],
        content: str,
        tool_calls: list[dict[str, Any]],
    ) -> None:
        if self.tools is None:
            raise BackendError("Model requested tools but no tool catalog is configured")
        messages.append({"role": "assistant", "content": content, "tool_calls": tool_calls})
        for call in tool_calls:
            function = call.get("function") or {}
            name = function.get("name")
            if not name:
                raise BackendError("Invalid tool call: missing function name")
            logger.info("tool_call", extra={"tool": name})
            result = await self._guarded(self.tools.call(name, function.get("arguments")))
            messages.append({"role": "tool", "content": result, "tool_name": name})

    async def _guarded(self, awaitable: Awaitable[T]) -> T:
        """Await a backend operation, classifying interruptions.

        A cancellation of the current task (client disconnect) propagates as is.
        A cancellation or interruption that originates inside the operation is fatal.
        """
        try:
            return await awaitable
        except asyncio.CancelledError as exc:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            raise FatalCancellation("Model invocation was cancelled") from exc
        except InterruptedError as exc:
            raise FatalCancellation("Model invocation was interrupted") from exc
