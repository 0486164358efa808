"""Per-organization bounded worker pool for execution instances.

Each organization gets its own semaphore, so one tenant's volume cannot
occupy another tenant's execution slots. Optionally the number of jobs
waiting for a slot is capped per organization; beyond the cap submit()
raises instead of queueing.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from autoflow.domain.exceptions import DispatchCapacityException
from autoflow.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

Job = Callable[[], Awaitable[Any]]


class OrganizationWorkerPool:
    """Schedules jobs as asyncio tasks, at most N running per organization."""

    def __init__(self, max_concurrent_per_organization: int, max_queued_per_organization: int = 0) -> None:
        if max_concurrent_per_organization < 1:
            raise ValueError("max_concurrent_per_organization must be >= 1")
        self.max_concurrent = max_concurrent_per_organization
        self.max_queued = max_queued_per_organization
        self._semaphores: dict[str, asyncio.Semaphore] = {}
        self._waiting: defaultdict[str, int] = defaultdict(int)
        self._running: defaultdict[str, int] = defaultdict(int)
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    def _semaphore(self, organization_id: str) -> asyncio.Semaphore:
        semaphore = self._semaphores.get(organization_id)
        if semaphore is None:
            semaphore = asyncio.Semaphore(self.max_concurrent)
            self._semaphores[organization_id] = semaphore
        return semaphore

    def submit(self, organization_id: str, job: Job, *, name: str | None = None) -> asyncio.Task:
        """Schedule job() for the organization and return its task immediately.

        Raises:
            DispatchCapacityException: If the organization's wait queue is full.
            RuntimeError: If the pool has been closed.
        """
        if self._closed:
            raise RuntimeError("Worker pool is closed")
        if self.max_queued and self._backlog(organization_id) >= self.max_queued:
            raise DispatchCapacityException(organization_id, self.max_queued)
        self._waiting[organization_id] += 1
        task = asyncio.create_task(self._run(organization_id, job), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _backlog(self, organization_id: str) -> int:
        # Submitted jobs that have not started yet take free slots first.
        free = max(0, self.max_concurrent - self._running[organization_id])
        return max(0, self._waiting[organization_id] - free)

    async def _run(self, organization_id: str, job: Job) -> Any:
        semaphore = self._semaphore(organization_id)
        waiting = True
        try:
            async with semaphore:
                self._waiting[organization_id] -= 1
                waiting = False
                self._running[organization_id] += 1
                try:
                    return await job()
                finally:
                    self._running[organization_id] -= 1
        finally:
            if waiting:
                self._waiting[organization_id] -= 1

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Worker pool job %s raised: %r", task.get_name(), error)

    def queued(self, organization_id: str) -> int:
        """Jobs that will have to wait for a slot to free up."""
        return self._backlog(organization_id)

    @property
    def closed(self) -> bool:
        return self._closed

    def running(self, organization_id: str) -> int:
        """Jobs currently holding a slot."""
        return self._running[organization_id]

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every submitted job has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self, *, cancel: bool = False) -> None:
        """Reject new jobs, optionally cancel running ones, then drain."""
        self._closed = True
        if cancel:
            for task in list(self._tasks):
                task.cancel()
        await self.drain()
