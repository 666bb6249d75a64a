from __future__ import annotations

"""Client for the external tool server that backs model tool calls."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from src.rag.errors import ToolError
from src.rag.http import client_scope, get_json
from src.rag.types import ToolSpec

logger = logging.getLogger(__name__)


@dataclass
class ToolCatalog:
    """Lists and executes tools exposed by a tool server over HTTP.

    The tool list is fetched lazily on first use and cached; ping() refreshes it.
    Without a configured base URL the catalog is empty and calls fail.
    """
    base_url: str | None
    timeout: float = 10.0
    client: httpx.AsyncClient | None = None
    _tools: list[ToolSpec] | None = field(default=None, init=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def list_tools(self) -> list[ToolSpec]:
        if not self.base_url:
            return []
        async with self._lock:
            if self._tools is None:
                self._tools = await self._fetch_tools()
            return list(self._tools)

    async def ping(self) -> int:
        """Re-list tools to confirm the server is reachable; returns the tool count."""
        if not self.base_url:
            return 0
        tools = await self._fetch_tools()
        async with self._lock:
            self._tools = tools
        logger.info("tool_server_ping", extra={"tools": len(tools)})
        return len(tools)

    async def call(self, name: str, arguments: dict[str, Any] | str | None) -> str:
        if not self.base_url:
            raise ToolError(f"Tool server is not configured; cannot call {name}")
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as exc:
                raise ToolError(f"Invalid arguments for tool {name}") from exc
        payload = arguments or {}
        try:
            async with client_scope(self.client, self.timeout) as http:
                response = await http.post(f"{self.base_url}/tools/{name}", json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ToolError(f"Tool {name} failed: {exc}") from exc
        result = data.get("result") if isinstance(data, dict) else data
        if isinstance(result, str):
            return result
        return json.dumps(result, ensure_ascii=False, default=str)

    async def _fetch_tools(self) -> list[ToolSpec]:
        try:
            data = await get_json(self.client, f"{self.base_url}/tools", timeout=self.timeout)
        except (httpx.HTTPError, ValueError) as exc:
            raise ToolError(f"Tool listing failed: {exc}") from exc
        if isinstance(data, dict):
            data = data.get("tools")
        if not isinstance(data, list):
            raise ToolError("Tool listing response is not a list")
        tools: list[ToolSpec] = []
        for item in data:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            tools.append(
                ToolSpec(
                    name=str(item["name"]),
                    description=str(item.get("description") or ""),
                    parameters=item.get("parameters") or {},
                )
            )
        return tools
