"""Bounded-concurrency request queue.

Admits queued work in strict arrival order while keeping at most
`max_concurrency` tasks in flight. Dispatching is driven by two events,
`task_enqueued` and `task_completed`; each one triggers a single dispatch
pass, so no scheduler task has to run in the background.
"""

import asyncio
import enum
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Set

from codelens.domain.errors import QueueClearedError

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 5


class DispatchState(enum.Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"


@dataclass
class QueuedTask:
    """A unit of queued work. Owned by the queue until it completes."""
    id: int
    work: Callable[[], Awaitable[Any]]
    future: "asyncio.Future[Any]" = field(repr=False)


class RequestQueue:
    """FIFO queue with a concurrency ceiling."""

    def __init__(self, max_concurrency: int = DEFAULT_MAX_CONCURRENCY):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1.")

        self.max_concurrency = max_concurrency
        self._pending: Deque[QueuedTask] = deque()
        self._in_flight = 0
        self._running: Set["asyncio.Task[None]"] = set()
        self._state = DispatchState.IDLE
        self._ids = itertools.count(1)
        logger.info(f"RequestQueue initialized: max_concurrency={max_concurrency}")

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def state(self) -> DispatchState:
        return self._state

    async def enqueue(self, work: Callable[[], Awaitable[Any]]) -> Any:
        """Queues `work` and waits for its result.

        The result (or exception) of `work` is delivered only to this caller.

        Raises:
            QueueClearedError: If the task was dropped by `clear()` before
                it started.
        """
        loop = asyncio.get_running_loop()
        task = QueuedTask(id=next(self._ids), work=work, future=loop.create_future())
        self._pending.append(task)
        logger.debug(f"Task {task.id} enqueued ({len(self._pending)} pending, {self._in_flight} in flight)")
        self._on_task_enqueued()
        return await task.future

    # --- Dispatch state machine ---

    def _on_task_enqueued(self) -> None:
        self._dispatch()

    def _on_task_completed(self) -> None:
        self._dispatch()

    def _dispatch(self) -> None:
        if self._state is DispatchState.DISPATCHING:
            return
        self._state = DispatchState.DISPATCHING
        try:
            while self._in_flight < self.max_concurrency and self._pending:
                task = self._pending.popleft()
                if task.future.done():
                    # Caller went away before admission.
                    continue
                self._in_flight += 1
                logger.debug(f"Task {task.id} admitted ({self._in_flight}/{self.max_concurrency} in flight)")
                runner = asyncio.ensure_future(self._run(task))
                self._running.add(runner)
                runner.add_done_callback(self._running.discard)
        finally:
            self._state = DispatchState.IDLE

    async def _run(self, task: QueuedTask) -> None:
        try:
            result = await task.work()
        except asyncio.CancelledError:
            if not task.future.done():
                task.future.cancel()
            raise
        except Exception as e:
            if not task.future.done():
                task.future.set_exception(e)
        else:
            if not task.future.done():
                task.future.set_result(result)
        finally:
            self._in_flight -= 1
            self._on_task_completed()

    # --- Introspection / lifecycle ---

    def stats(self) -> Dict[str, int]:
        return {"queued": len(self._pending), "processing": self._in_flight}

    def clear(self) -> int:
        """Drops every task that has not started yet. In-flight tasks are untouched.

        Each dropped caller receives a `QueueClearedError`.

        Returns:
            The number of dropped tasks.
        """
        dropped = 0
        while self._pending:
            task = self._pending.popleft()
            if not task.future.done():
                task.future.set_exception(QueueClearedError(f"Request {task.id} dropped: queue cleared"))
                dropped += 1
        if dropped:
            logger.info(f"Request queue cleared: {dropped} pending task(s) dropped.")
        return dropped
