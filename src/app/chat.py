from __future__ import annotations

"""Chat request boundary: metrics scope, assembly, invocation, streaming and errors."""

import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator

from src.app.metrics import RequestMetrics
from src.app.supervisor import FailureEscalator
from src.rag.errors import EmptyResultError, ValidationError
from src.rag.llm import NO_CONTENT_ERROR, ModelInvoker, apply_tool_override, collect
from src.rag.prompt import PromptAssembler
from src.rag.streaming import Event, ResponseStreamer, error_event
from src.rag.types import ChatRequest, ModelResult

logger = logging.getLogger(__name__)

EMPTY_BODY_ERROR = "Invalid input: request body is empty"


@dataclass
class ChatPipeline:
    assembler: PromptAssembler
    invoker: ModelInvoker
    streamer: ResponseStreamer
    metrics: RequestMetrics
    supervisor: FailureEscalator
    model: str
    tools_disabled_models: frozenset[str] = frozenset()
    invocation_mode: str = "call"
    log_content_chars: int = 200

    async def stream_chat(
        self, request: ChatRequest | None, client_ip: str = "unknown"
    ) -> AsyncIterator[Event]:
        """Yield the SSE events for one chat request; errors become one error event."""
        with self.metrics.track():
            if request is None:
                logger.warning("chat_request_empty", extra={"client_ip": client_ip})
                yield error_event(EMPTY_BODY_ERROR)
                return
            try:
                result = await self._complete(request, client_ip)
            except EmptyResultError:
                logger.warning(
                    "chat_empty_response",
                    extra={"client_ip": client_ip, "session_id": request.resolved_session_id},
                )
                yield error_event(NO_CONTENT_ERROR)
                return
            except Exception as exc:
                self._handle_failure(exc, request, client_ip)
                yield error_event(str(exc) or exc.__class__.__name__)
                return
            async for event in self.streamer.stream(result):
                yield event

    async def chat(self, request: ChatRequest | None, client_ip: str = "unknown") -> ModelResult:
        """Return the complete result; errors propagate after the supervisor sees them."""
        with self.metrics.track():
            if request is None:
                raise ValidationError(EMPTY_BODY_ERROR)
            try:
                return await self._complete(request, client_ip)
            except EmptyResultError:
                raise
            except Exception as exc:
                self._handle_failure(exc, request, client_ip)
                raise

    async def _complete(self, request: ChatRequest, client_ip: str) -> ModelResult:
        started = time.monotonic()
        request = apply_tool_override(request, self.model, self.tools_disabled_models)
        logger.info(
            "chat_request_received",
            extra={
                "client_ip": client_ip,
                "session_id": request.resolved_session_id,
                "assistant_id": request.resolved_assistant_id,
                "only_tool": request.only_tool,
                "text_content": request.user_text[: self.log_content_chars],
            },
        )
        prompt = await self.assembler.assemble(request)
        tools_enabled = request.tools_requested
        if self.invocation_mode == "stream":
            result = await collect(self.invoker.invoke_stream(prompt, tools_enabled))
            if not result.text:
                raise EmptyResultError(NO_CONTENT_ERROR)
        else:
            result = await self.invoker.invoke(prompt, tools_enabled)
        logger.info(
            "chat_completed",
            extra={
                "session_id": request.resolved_session_id,
                "mode": prompt.mode,
                "answer_length": len(result.text),
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return result

    def _handle_failure(self, exc: Exception, request: ChatRequest, client_ip: str) -> None:
        logger.error(
            "chat_failed",
            extra={
                "client_ip": client_ip,
                "session_id": request.resolved_session_id,
                "text_content": request.user_text[: self.log_content_chars],
                "error": str(exc),
            },
            exc_info=exc,
        )
        self.supervisor.inspect(exc)
