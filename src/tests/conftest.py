from __future__ import annotations

"""Shared pytest fixtures and test environment defaults."""

import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("RAG_VECTORSTORE", "memory")
os.environ["EMBEDDING_PROVIDER"] = "hash"
os.environ["EMBEDDING_DIMENSION"] = "256"
os.environ["CHAT_STREAM_DELAY_MS"] = "0"
os.environ.pop("CHAT_TOOLS_URL", None)

from src.tests.fakes import CharEncoding, RecordingTerminator  # noqa: E402


@pytest.fixture
def char_encoding() -> CharEncoding:
    return CharEncoding()


@pytest.fixture
def terminator() -> RecordingTerminator:
    return RecordingTerminator()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
