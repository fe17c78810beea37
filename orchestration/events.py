"""Progress notifications.

Callbacks are fire-and-forget: the executors ``emit`` onto a queue and a
single consumer task delivers them, so a slow or failing observer never
blocks phase execution.  Callbacks may be plain functions or coroutines.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_CLOSE = object()


@dataclass
class ProgressCallbacks:
    """Optional observers; every field may be left as ``None``.

    Signatures::

        on_phase_start(phase)
        on_phase_end(phase, phase_result)
        on_unit_failed(phase_id, unit_result)
        on_cost_warning(spent, limit)
        on_complete(final_conclusion)
    """

    on_phase_start: Callable[..., Any] | None = None
    on_phase_end: Callable[..., Any] | None = None
    on_unit_failed: Callable[..., Any] | None = None
    on_cost_warning: Callable[..., Any] | None = None
    on_complete: Callable[..., Any] | None = None


class ProgressChannel:
    """Outbound event queue drained by one background task."""

    def __init__(self, callbacks: ProgressCallbacks | None = None) -> None:
        self.callbacks = callbacks or ProgressCallbacks()
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._consume())

    def emit(self, event: str, *args: Any) -> None:
        if getattr(self.callbacks, f"on_{event}", None) is None:
            return
        self._queue.put_nowait((event, args))

    async def aclose(self, timeout: float = 5.0) -> None:
        """Deliver what is queued (within ``timeout``) and stop the consumer."""
        if self._task is None:
            return
        self._queue.put_nowait(_CLOSE)
        try:
            await asyncio.wait_for(self._task, timeout)
        except asyncio.TimeoutError:
            logger.warning("Progress observers still busy after %.1fs; dropping the rest", timeout)
        finally:
            self._task = None

    async def _consume(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            event, args = item
            callback = getattr(self.callbacks, f"on_{event}")
            try:
                outcome = callback(*args)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("Progress observer for %r failed", event)
