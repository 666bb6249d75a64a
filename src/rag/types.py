from __future__ import annotations

"""Core data types for chat requests, prompts, model results and documents."""

from dataclasses import dataclass, field, replace
from typing import Any, Literal

DEFAULT_SESSION_ID = "default_session"
DEFAULT_ASSISTANT_ID = "default_user"

PromptMode = Literal["tool_only", "contextual"]


@dataclass(frozen=True)
class Document:
    """Document chunk with metadata."""
    doc_id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResult:
    """Search result with similarity score."""
    document: Document
    score: float


@dataclass(frozen=True)
class ChatRequest:
    """Caller-supplied chat parameters."""
    text_content: str | None = None
    content: str | None = None
    session_id: str | None = None
    assistant_id: str | None = None
    enable_vector_store: bool = False
    enable_tool: bool = False
    only_tool: bool = False

    @property
    def resolved_session_id(self) -> str:
        return self.session_id if self.session_id is not None else DEFAULT_SESSION_ID

    @property
    def resolved_assistant_id(self) -> str:
        return self.assistant_id if self.assistant_id is not None else DEFAULT_ASSISTANT_ID

    @property
    def user_text(self) -> str:
        return self.text_content if self.text_content is not None else ""

    @property
    def tools_requested(self) -> bool:
        return self.enable_tool or self.only_tool

    def without_tools(self) -> ChatRequest:
        """Return a copy with both tool flags cleared."""
        return replace(self, enable_tool=False, only_tool=False)


@dataclass(frozen=True)
class ContextBundle:
    """Context gathered for a single prompt."""
    vector_context: str
    chat_history: str
    system_template: str
    user_text: str
    custom_system_prompt: str

    def placeholders(self) -> dict[str, str]:
        return {
            "context": self.vector_context,
            "chatHistory": self.chat_history,
            "customSystemPrompt": self.custom_system_prompt,
            "userText": self.user_text,
        }


@dataclass(frozen=True)
class ToolSpec:
    """Tool capability advertised to the model."""
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {"type": "object", "properties": {}},
            },
        }


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str
    tool_calls: tuple[dict[str, Any], ...] = ()
    tool_name: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = list(self.tool_calls)
        if self.tool_name:
            payload["tool_name"] = self.tool_name
        return payload


@dataclass(frozen=True)
class InvocationOptions:
    tools: tuple[ToolSpec, ...] = ()


@dataclass(frozen=True)
class AssembledPrompt:
    """Role-tagged messages plus invocation options, owned by one request."""
    messages: tuple[ChatMessage, ...]
    mode: PromptMode
    options: InvocationOptions = field(default_factory=InvocationOptions)

    def with_tools(self, tools: list[ToolSpec]) -> AssembledPrompt:
        return replace(self, options=replace(self.options, tools=tuple(tools)))


@dataclass(frozen=True)
class ModelResult:
    """Complete model answer with opaque usage metadata."""
    text: str
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class ModelChunk:
    """Partial model answer; the final chunk carries usage metadata."""
    text: str
    done: bool = False
    metadata: dict[str, Any] | None = None
