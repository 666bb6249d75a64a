from __future__ import annotations

"""Shared httpx helpers for collaborator clients."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx


def resolve_timeout(timeout: float | None) -> float | None:
    """Treat zero or negative timeouts as 'no timeout'."""
    if timeout is None or timeout <= 0:
        return None
    return timeout


@asynccontextmanager
async def client_scope(
    client: httpx.AsyncClient | None, timeout: float | None
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=resolve_timeout(timeout)) as owned:
        yield owned


async def get_json(
    client: httpx.AsyncClient | None,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    timeout: float | None = None,
) -> Any:
    """GET a URL and decode the JSON body; transport and decode errors propagate."""
    async with client_scope(client, timeout) as http:
        response = await http.get(url, params=params)
        response.raise_for_status()
        return response.json()
