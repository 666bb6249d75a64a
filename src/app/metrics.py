from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response

from src.app.settings import settings

logger = logging.getLogger(__name__)

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
CHAT_REQUESTS = Counter(
    "chat_requests_total",
    "Chat requests received",
)
CHAT_IN_FLIGHT = Gauge(
    "chat_requests_in_flight",
    "Chat requests currently being processed",
)


async def metrics_middleware(request: Request, call_next):
    if not settings.metrics_enabled:
        return await call_next(request)
    path = request.url.path
    if path == "/metrics":
        return await call_next(request)
    start = time.monotonic()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        duration = time.monotonic() - start
        REQUEST_COUNT.labels(request.method, path, str(status)).inc()
        REQUEST_LATENCY.labels(request.method, path).observe(duration)


def metrics_response() -> Response:
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@dataclass(frozen=True)
class MetricsSnapshot:
    total: int
    per_interval: int
    in_flight: int


class RequestMetrics:
    """Process-wide chat request counters guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._per_interval = 0
        self._in_flight = 0

    def on_request_start(self) -> None:
        with self._lock:
            self._total += 1
            self._per_interval += 1
            self._in_flight += 1
        CHAT_REQUESTS.inc()
        CHAT_IN_FLIGHT.inc()

    def on_request_end(self) -> None:
        with self._lock:
            if self._in_flight == 0:
                logger.warning("request_metrics_unbalanced_end")
                return
            self._in_flight -= 1
        CHAT_IN_FLIGHT.dec()

    def on_interval_tick(self) -> MetricsSnapshot:
        """Read and reset the per-interval counter, then log all three counts."""
        with self._lock:
            snapshot = MetricsSnapshot(
                total=self._total,
                per_interval=self._per_interval,
                in_flight=self._in_flight,
            )
            self._per_interval = 0
        logger.info(
            "request_metrics",
            extra={
                "total_requests": snapshot.total,
                "requests_last_interval": snapshot.per_interval,
                "in_flight": snapshot.in_flight,
            },
        )
        return snapshot

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                total=self._total,
                per_interval=self._per_interval,
                in_flight=self._in_flight,
            )

    @contextmanager
    def track(self) -> Iterator[None]:
        """Count one request; the end fires once on every exit path."""
        self.on_request_start()
        try:
            yield
        finally:
            self.on_request_end()
