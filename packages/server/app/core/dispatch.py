"""
Fire-and-forget dispatch for outbound side effects (invitation emails).

Callers never await the work. Tasks are referenced until they finish so the
event loop cannot garbage-collect them, and failures are logged.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

log = structlog.get_logger()

_pending: set[asyncio.Task] = set()


def dispatch(coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
    """Schedule ``coro`` on the running loop without waiting for it."""
    task = asyncio.create_task(coro, name=name)
    _pending.add(task)
    task.add_done_callback(_on_done)
    return task


def _on_done(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        log.warning("dispatch.cancelled", task=task.get_name())
        return
    exc = task.exception()
    if exc is not None:
        log.error(
            "dispatch.failed",
            task=task.get_name(),
            error=repr(exc),
            exc_info=(type(exc), exc, exc.__traceback__),
        )


def pending_count() -> int:
    return len(_pending)


async def drain(timeout: float | None = None) -> None:
    """Wait for in-flight tasks, e.g. on shutdown. Stragglers are cancelled."""
    if not _pending:
        return
    tasks = list(_pending)
    _, still_running = await asyncio.wait(tasks, timeout=timeout)
    for task in still_running:
        task.cancel()
    if still_running:
        log.warning("dispatch.drain_timeout", cancelled=len(still_running))
