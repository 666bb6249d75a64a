from __future__ import annotations

import pytest

from src.rag.errors import ContextFetchError
from src.rag.prompt import PromptAssembler, render_template
from src.rag.types import ChatRequest
from src.tests.fakes import StaticProvider

pytestmark = pytest.mark.anyio

TEMPLATE = (
    "Persona: {customSystemPrompt}\n"
    "Knowledge: {context}\n"
    "History: {chatHistory}\n"
    "Question: {userText}"
)


def _assembler(
    vector: StaticProvider | None = None,
    history: StaticProvider | None = None,
    template: StaticProvider | None = None,
) -> tuple[PromptAssembler, StaticProvider, StaticProvider, StaticProvider]:
    vector = vector or StaticProvider("passage one\npassage two")
    history = history or StaticProvider("user:hi\nai:hello")
    template = template or StaticProvider(TEMPLATE)
    assembler = PromptAssembler(
        vector_provider=vector, history_provider=history, template_provider=template
    )
    return assembler, vector, history, template


def test_render_template_blanks_unknown_placeholders() -> None:
    rendered = render_template("a {known} b {unknown} c", {"known": "K"})
    assert rendered == "a K b  c"


def test_render_template_keeps_non_placeholder_braces() -> None:
    rendered = render_template('json {"k": 1} {userText} {}', {"userText": "q"})
    assert rendered == 'json {"k": 1} q {}'


async def test_only_tool_builds_single_user_message_without_providers() -> None:
    assembler, vector, history, template = _assembler()

    prompt = await assembler.assemble(ChatRequest(text_content="hello", only_tool=True))

    assert prompt.mode == "tool_only"
    assert [(m.role, m.content) for m in prompt.messages] == [("user", "hello")]
    assert vector.calls == [] and history.calls == [] and template.calls == []


async def test_only_tool_with_missing_text_is_empty_message() -> None:
    assembler, *_ = _assembler()
    prompt = await assembler.assemble(ChatRequest(only_tool=True))
    assert prompt.messages[0].content == ""


async def test_contextual_prompt_fills_every_placeholder() -> None:
    assembler, vector, history, _ = _assembler()
    request = ChatRequest(
        text_content="What is the refund window?",
        content="You are a support agent.",
        session_id="s-1",
        assistant_id="shop",
        enable_vector_store=True,
    )

    prompt = await assembler.assemble(request)

    assert prompt.mode == "contextual"
    assert len(prompt.messages) == 1
    message = prompt.messages[0]
    assert message.role == "system"
    assert message.content == (
        "Persona: You are a support agent.\n"
        "Knowledge: passage one\npassage two\n"
        "History: user:hi\nai:hello\n"
        "Question: What is the refund window?"
    )
    assert vector.calls == [(True, "shop", "What is the refund window?")]
    assert history.calls == [("s-1",)]


async def test_contextual_prompt_applies_defaults() -> None:
    assembler, vector, history, _ = _assembler()

    prompt = await assembler.assemble(ChatRequest())

    assert vector.calls == [(False, "default_user", "")]
    assert history.calls == [("default_session",)]
    assert "Persona: \n" in prompt.messages[0].content
    assert prompt.messages[0].content.endswith("Question: ")


async def test_provider_failure_propagates() -> None:
    assembler, *_ = _assembler(history=StaticProvider(error=ContextFetchError("history down")))
    with pytest.raises(ContextFetchError):
        await assembler.assemble(ChatRequest(text_content="hi"))
