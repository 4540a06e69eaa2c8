"""
Cooperative Scheduler
=====================
A single-worker queue for low-priority background jobs (category
validation).  Jobs run one at a time, the worker yields to the event loop
before each job, and jobs call ``pause()`` between their own steps so
foreground requests are never starved.

``sleep`` is injectable; tests pass a recording fake and drive the queue
with ``run_pending()`` instead of starting the worker.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Optional

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


@dataclass
class _QueuedJob:
    name: str
    job: Job
    future: asyncio.Future = field(repr=False)


class CooperativeScheduler:
    """
    Background task queue with inter-step yield points.

    Usage::

        scheduler = CooperativeScheduler(step_delay=0.25)
        scheduler.start()
        future = scheduler.submit(validate_alice, name="validate:alice")
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        step_delay: float = 0.25,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.step_delay = step_delay
        self._sleep = sleep
        self._pending: Deque[_QueuedJob] = deque()
        self._wakeup: Optional[asyncio.Event] = None
        self._worker: Optional[asyncio.Task] = None
        self._completed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def completed(self) -> int:
        return self._completed

    def submit(self, job: Job, name: str = "job") -> asyncio.Future:
        """Queue *job*; the returned future resolves with its result."""
        future = asyncio.get_running_loop().create_future()
        self._pending.append(_QueuedJob(name=name, job=job, future=future))
        logger.debug(f"[SCHEDULER] queued '{name}' ({len(self._pending)} pending)")
        if self._wakeup is not None:
            self._wakeup.set()
        return future

    async def pause(self) -> None:
        """Yield point between the steps of a background job."""
        await self._sleep(self.step_delay)

    async def _run_one(self, queued: _QueuedJob) -> None:
        if queued.future.cancelled():
            return
        try:
            result = await queued.job()
        except asyncio.CancelledError:
            queued.future.cancel()
            raise
        except Exception as e:
            logger.warning(f"[SCHEDULER] job '{queued.name}' failed: {e}")
            if not queued.future.done():
                queued.future.set_exception(e)
        else:
            if not queued.future.done():
                queued.future.set_result(result)
        finally:
            self._completed += 1

    async def run_pending(self) -> int:
        """Run every queued job inline, in order; returns how many ran."""
        ran = 0
        while self._pending:
            await self._run_one(self._pending.popleft())
            ran += 1
        return ran

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker task (idempotent)."""
        if self.running:
            return
        self._wakeup = asyncio.Event()
        self._worker = asyncio.create_task(self._worker_loop())
        logger.debug("[SCHEDULER] worker started")

    async def _worker_loop(self) -> None:
        while True:
            if not self._pending:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            # Let foreground work run before each background job
            await asyncio.sleep(0)
            await self._run_one(self._pending.popleft())

    async def stop(self) -> None:
        """Cancel the worker and every job still queued."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        while self._pending:
            self._pending.popleft().future.cancel()
        logger.debug("[SCHEDULER] worker stopped")
