from __future__ import annotations

"""Process supervisor that turns fatal interruptions into a prompt exit."""

import asyncio
import concurrent.futures
import enum
import logging
import os
import threading
from typing import Callable

from src.rag.errors import FatalCancellation

logger = logging.getLogger(__name__)

EXIT_FATAL_CANCELLATION = 3
EXIT_TOOL_PROVIDER_FAILURE = 4

_FATAL_TYPES: tuple[type[BaseException], ...] = (
    FatalCancellation,
    InterruptedError,
    asyncio.CancelledError,
    concurrent.futures.CancelledError,
)


class ProcessState(enum.Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


def is_interruption(exc: BaseException | None) -> bool:
    """Return True when the exception or anything in its cause chain is an interruption."""
    seen: set[int] = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, _FATAL_TYPES):
            return True
        seen.add(id(exc))
        exc = exc.__cause__ or exc.__context__
    return False


class FailureEscalator:
    """Two-state supervisor: RUNNING until the first fatal failure, then SHUTTING_DOWN."""

    def __init__(self, terminate: Callable[[int], object] = os._exit) -> None:
        self._terminate = terminate
        self._lock = threading.Lock()
        self._state = ProcessState.RUNNING
        self._hooks: list[Callable[[], object]] = []

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def accepting_requests(self) -> bool:
        return self._state is ProcessState.RUNNING

    def add_shutdown_hook(self, hook: Callable[[], object]) -> None:
        self._hooks.append(hook)

    def inspect(self, exc: BaseException) -> bool:
        """Escalate when the error is an interruption; ordinary errors are left alone."""
        if not is_interruption(exc):
            return False
        self.fail("Model invocation interrupted", EXIT_FATAL_CANCELLATION, exc)
        return True

    def fail(self, reason: str, status: int, exc: BaseException | None = None) -> None:
        with self._lock:
            if self._state is ProcessState.SHUTTING_DOWN:
                logger.info("escalation_ignored", extra={"reason": reason})
                return
            self._state = ProcessState.SHUTTING_DOWN
        logger.critical(
            "process_shutting_down",
            extra={"reason": reason, "exit_status": status},
            exc_info=exc,
        )
        for hook in self._hooks:
            try:
                hook()
            except Exception:
                logger.exception("shutdown_hook_failed")
        self._terminate(status)
