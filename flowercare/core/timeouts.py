"""Deadline racing for network-facing steps."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from flowercare.core.errors import OperationTimeoutError

T = TypeVar("T")

LOGGER = logging.getLogger(__name__)


def _discard_outcome(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.debug("Abandoned operation finished with %r", exc)


async def with_timeout(awaitable: Awaitable[T], timeout_s: float | None, *, what: str = "operation") -> T:
    """Await `awaitable`, failing with OperationTimeoutError after `timeout_s` seconds.

    A non-positive or missing timeout waits without a deadline. On expiry the
    underlying task is cancelled and abandoned; whatever it eventually produces
    is discarded. Deadlines of sequential calls add up, they are not shared.
    """
    if timeout_s is None or timeout_s <= 0:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_s)
    except asyncio.CancelledError:
        task.cancel()
        task.add_done_callback(_discard_outcome)
        raise

    if task in done:
        return task.result()

    task.cancel()
    task.add_done_callback(_discard_outcome)
    raise OperationTimeoutError(f"{what} timed out after {timeout_s:.3f} seconds")
