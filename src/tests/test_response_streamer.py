from __future__ import annotations

import json

import pytest

from src.rag.streaming import Event, ResponseStreamer
from src.rag.types import ModelResult

pytestmark = pytest.mark.anyio


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def _events(streamer: ResponseStreamer, result: ModelResult) -> list[Event]:
    return [event async for event in streamer.stream(result)]


async def test_one_message_event_per_character_then_metadata() -> None:
    sleep = RecordingSleep()
    streamer = ResponseStreamer(delay_seconds=0.05, sleep=sleep)
    metadata = {"promptTokens": 5, "completionTokens": 2, "totalTokens": 7}

    events = await _events(streamer, ModelResult(text="hi there", metadata=metadata))

    assert [event.name for event in events] == ["message"] * 8 + ["metadata"]
    assert "".join(event.data["content"] for event in events[:-1]) == "hi there"
    assert events[-1].data == {"metadata": metadata}
    assert sleep.delays == [0.05] * 8


async def test_missing_metadata_uses_placeholder() -> None:
    streamer = ResponseStreamer(delay_seconds=0)
    events = await _events(streamer, ModelResult(text="ok"))
    assert events[-1].data == {"metadata": "No metadata available"}


async def test_empty_text_yields_single_error_event() -> None:
    sleep = RecordingSleep()
    streamer = ResponseStreamer(delay_seconds=0.05, sleep=sleep)

    events = await _events(streamer, ModelResult(text="", metadata={"totalTokens": 1}))

    assert events == [Event(name="error", data={"error": "No content received"})]
    assert sleep.delays == []


async def test_restreaming_is_identical() -> None:
    streamer = ResponseStreamer(delay_seconds=0)
    result = ModelResult(text="naïve 🙂", metadata={"model": "m"})

    first = await _events(streamer, result)
    second = await _events(streamer, result)

    assert first == second
    assert [event.data.get("content") for event in first[:-1]] == list("naïve 🙂")


def test_event_encodes_as_sse_frame() -> None:
    frame = Event(name="message", data={"content": "é"}).encode()
    assert frame.startswith("event: message\ndata: ")
    assert frame.endswith("\n\n")
    payload = frame[len("event: message\ndata: ") : -2]
    assert json.loads(payload) == {"content": "é"}
