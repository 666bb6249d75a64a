from __future__ import annotations

"""Prompt assembly for tool-only and contextual chat modes."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Mapping

from src.rag.context import ChatHistoryProvider, SystemTemplateProvider, VectorContextProvider
from src.rag.types import AssembledPrompt, ChatMessage, ChatRequest, ContextBundle

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Fill {name} placeholders; unknown names render as empty strings."""
    return _PLACEHOLDER_RE.sub(lambda match: values.get(match.group(1)) or "", template)


@dataclass
class PromptAssembler:
    """Build one structured prompt from the request and its context sources."""
    vector_provider: VectorContextProvider
    history_provider: ChatHistoryProvider
    template_provider: SystemTemplateProvider

    async def assemble(self, request: ChatRequest) -> AssembledPrompt:
        if request.only_tool:
            return AssembledPrompt(
                messages=(ChatMessage(role="user", content=request.user_text),),
                mode="tool_only",
            )
        bundle = await self.gather(request)
        system_text = render_template(bundle.system_template, bundle.placeholders())
        return AssembledPrompt(
            messages=(ChatMessage(role="system", content=system_text),),
            mode="contextual",
        )

    async def gather(self, request: ChatRequest) -> ContextBundle:
        """Fetch the three context sources concurrently and join on all of them."""
        vector_context, chat_history, template = await asyncio.gather(
            self.vector_provider.fetch(
                request.enable_vector_store,
                request.resolved_assistant_id,
                request.user_text,
            ),
            self.history_provider.fetch(request.resolved_session_id),
            self.template_provider.fetch(),
        )
        logger.debug(
            "prompt_context_gathered",
            extra={
                "session_id": request.resolved_session_id,
                "vector_context_length": len(vector_context),
                "history_length": len(chat_history),
            },
        )
        return ContextBundle(
            vector_context=vector_context,
            chat_history=chat_history,
            system_template=template,
            user_text=request.user_text,
            custom_system_prompt=request.content or "",
        )
