from __future__ import annotations

import asyncio
import logging
import threading

import httpx
import pytest

from src.app.metrics import RequestMetrics
from src.app.tasks import PeriodicTask

pytestmark = pytest.mark.anyio


def test_track_balances_on_success_and_error() -> None:
    metrics = RequestMetrics()
    with metrics.track():
        assert metrics.snapshot().in_flight == 1
    with pytest.raises(ValueError):
        with metrics.track():
            raise ValueError("boom")

    snapshot = metrics.snapshot()
    assert snapshot.total == 2
    assert snapshot.in_flight == 0


def test_end_without_start_clamps_at_zero(caplog: pytest.LogCaptureFixture) -> None:
    metrics = RequestMetrics()
    with caplog.at_level(logging.WARNING):
        metrics.on_request_end()
    assert metrics.snapshot().in_flight == 0
    assert "request_metrics_unbalanced_end" in caplog.text


def test_interval_tick_reads_and_resets(caplog: pytest.LogCaptureFixture) -> None:
    metrics = RequestMetrics()
    for _ in range(3):
        metrics.on_request_start()
    metrics.on_request_end()

    with caplog.at_level(logging.INFO):
        first = metrics.on_interval_tick()
    second = metrics.on_interval_tick()

    assert (first.total, first.per_interval, first.in_flight) == (3, 3, 2)
    assert (second.total, second.per_interval, second.in_flight) == (3, 0, 2)
    assert "request_metrics" in caplog.text


def test_counters_are_consistent_across_threads() -> None:
    metrics = RequestMetrics()

    def worker() -> None:
        for _ in range(200):
            with metrics.track():
                pass

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    snapshot = metrics.snapshot()
    assert snapshot.total == 1600
    assert snapshot.in_flight == 0


async def test_concurrent_requests_with_failures_and_cancellation() -> None:
    metrics = RequestMetrics()
    release = asyncio.Event()

    async def handle(index: int) -> None:
        with metrics.track():
            await release.wait()
            if index % 3 == 0:
                raise RuntimeError("backend failed")

    tasks = [asyncio.create_task(handle(index)) for index in range(30)]
    await asyncio.sleep(0)
    assert metrics.snapshot().in_flight == 30
    tasks[1].cancel()
    release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert sum(isinstance(result, RuntimeError) for result in results) == 10
    assert isinstance(results[1], asyncio.CancelledError)
    snapshot = metrics.snapshot()
    assert snapshot.total == 30
    assert snapshot.in_flight == 0


async def test_periodic_task_runs_until_stopped() -> None:
    ticks: list[int] = []
    task = PeriodicTask(name="tick", interval=0.01, action=lambda: ticks.append(1), run_immediately=True)
    task.start()
    await asyncio.sleep(0.05)
    await task.stop()

    assert ticks
    assert task.running is False


async def test_periodic_task_survives_action_errors() -> None:
    calls: list[int] = []

    async def flaky() -> None:
        calls.append(1)
        raise RuntimeError("transient")

    task = PeriodicTask(name="flaky", interval=0.01, action=flaky, run_immediately=True)
    task.start()
    await asyncio.sleep(0.05)
    await task.stop()

    assert len(calls) >= 2


async def test_metrics_endpoint_exposes_chat_counters() -> None:
    from src.app.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/metrics")
    assert response.status_code == 200
    assert "chat_requests_total" in response.text
    assert "chat_requests_in_flight" in response.text
