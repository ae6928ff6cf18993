import asyncio
from typing import Awaitable, Set

from pedibus.core.logger import logger

_background_tasks: Set[asyncio.Task] = set()


def _on_done(task: asyncio.Task):
    _background_tasks.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"❌ Background task '{task.get_name()}' failed: {error!r}")


def fire_and_forget(coro: Awaitable, name: str) -> asyncio.Task:
    """Run ``coro`` detached from the caller. Failures are logged, never retried."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_done)
    return task


async def drain_background_tasks():
    """Wait for every detached task still running (shutdown and tests)."""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)
