from __future__ import annotations

import json

import httpx
import pytest

from src.rag.errors import ToolError
from src.rag.tools import ToolCatalog

pytestmark = pytest.mark.anyio

TOOLS_URL = "http://tools.test"


async def test_tool_list_is_cached_until_ping() -> None:
    listings: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        listings.append(1)
        return httpx.Response(200, json=[{"name": "search", "description": "Web search"}])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        catalog = ToolCatalog(base_url=TOOLS_URL, client=client)
        first = await catalog.list_tools()
        second = await catalog.list_tools()
        assert await catalog.ping() == 1

    assert [tool.name for tool in first] == ["search"]
    assert first == second
    assert len(listings) == 2


async def test_unconfigured_catalog_is_empty() -> None:
    catalog = ToolCatalog(base_url=None)
    assert await catalog.list_tools() == []
    assert await catalog.ping() == 0
    with pytest.raises(ToolError):
        await catalog.call("search", {})


async def test_ping_failure_raises_tool_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        catalog = ToolCatalog(base_url=TOOLS_URL, client=client)
        with pytest.raises(ToolError):
            await catalog.ping()


async def test_call_accepts_json_string_arguments() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"result": {"hits": 2}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        catalog = ToolCatalog(base_url=TOOLS_URL, client=client)
        result = await catalog.call("search", '{"q": "python"}')

    assert bodies == [{"q": "python"}]
    assert json.loads(result) == {"hits": 2}


async def test_call_failure_raises_tool_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "unknown tool"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        catalog = ToolCatalog(base_url=TOOLS_URL, client=client)
        with pytest.raises(ToolError):
            await catalog.call("missing", {})
