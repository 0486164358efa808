"""Trigger dispatcher: domain events in, execution instances out.

dispatch() matches the organization's active, published workflows against
the event, creates one pending instance per match bound to the published
version, schedules it on the per-organization worker pool and returns
without waiting for any execution to finish.

Subscribers are notified first. Plain callbacks run inline and must be
quick; async callbacks are scheduled as tasks, so a slow subscriber never
delays workflow starts. drain() waits for them.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

from autoflow.application.dtos.trigger_event import TriggerEvent
from autoflow.application.interfaces.repositories import (
    IExecutionRepository,
    IWorkflowRepository,
    IWorkflowVersionRepository,
)
from autoflow.application.services.builtin_handlers import (
    CTX_ENTITY_ID,
    CTX_EVENT_TYPE,
    CTX_EXECUTION_ID,
    CTX_ORGANIZATION_ID,
)
from autoflow.application.services.trigger_config_resolver import TriggerConfigResolver
from autoflow.domain.entities.execution import ExecutionInstance
from autoflow.domain.entities.graph import WorkflowGraph
from autoflow.domain.entities.workflow import WorkflowEntity
from autoflow.domain.exceptions import DispatchCapacityException, ValidationException
from autoflow.infrastructure.services.worker_pool import OrganizationWorkerPool
from autoflow.infrastructure.services.workflow_engine import WorkflowEngine
from autoflow.shared.cancellation import CancellationToken
from autoflow.shared.enums import ExecutionStatus
from autoflow.shared.telemetry.logging import get_logger
from autoflow.shared.telemetry.tracing import traced
from autoflow.shared.utils.datetime import utc_now
from autoflow.shared.utils.generators import generate_cuid

logger = get_logger(__name__)

WILDCARD = "*"
SHUTDOWN_REASON = "Engine shutting down"

EventCallback = Callable[[TriggerEvent], Awaitable[None] | None]


class TriggerDispatcher:
    """Fans events out to subscribers and starts matching workflows."""

    def __init__(
        self,
        workflow_repo: IWorkflowRepository,
        version_repo: IWorkflowVersionRepository,
        execution_repo: IExecutionRepository,
        engine: WorkflowEngine,
        pool: OrganizationWorkerPool,
        resolver: TriggerConfigResolver | None = None,
    ) -> None:
        self.workflow_repo = workflow_repo
        self.version_repo = version_repo
        self.execution_repo = execution_repo
        self.engine = engine
        self.pool = pool
        self.resolver = resolver or TriggerConfigResolver()
        self._subscribers: defaultdict[str, list[EventCallback]] = defaultdict(list)
        self._tokens: dict[str, CancellationToken] = {}
        self._subscriber_tasks: set[asyncio.Future] = set()

    def subscribe(self, event_type: str, callback: EventCallback) -> Callable[[], None]:
        """Register callback for event_type ('*' for every type). Returns an unsubscribe function."""
        if not event_type:
            raise ValidationException("event_type is required", field="event_type")
        self._subscribers[event_type].append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _notify_subscribers(self, event: TriggerEvent) -> None:
        """Call subscribers in order; async callbacks run as tasks so matching never waits on them."""
        for callback in [*self._subscribers.get(event.type, []), *self._subscribers.get(WILDCARD, [])]:
            try:
                outcome = callback(event)
            except Exception:
                logger.exception(
                    "Subscriber %r failed for event %s (organization_id=%s)",
                    callback,
                    event.type,
                    event.organization_id,
                )
                continue
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._subscriber_tasks.add(task)
                task.add_done_callback(partial(self._subscriber_done, callback, event))

    def _subscriber_done(
        self, callback: EventCallback, event: TriggerEvent, task: asyncio.Future
    ) -> None:
        self._subscriber_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Subscriber %r failed for event %s (organization_id=%s)",
                callback,
                event.type,
                event.organization_id,
                exc_info=error,
            )

    @traced("trigger_dispatcher.dispatch")
    async def dispatch(self, event: TriggerEvent) -> list[ExecutionInstance]:
        """Start every matching workflow; return the created instances (not awaited)."""
        if not event.type or not event.organization_id:
            raise ValidationException("Event type and organization_id are required", field="event")
        self._notify_subscribers(event)

        candidates = await self.workflow_repo.list_triggerable(event.organization_id, event.type)
        instances: list[ExecutionInstance] = []
        for workflow in candidates:
            if not self.resolver.matches(workflow, event):
                continue
            instance = await self._start(workflow, event)
            if instance is not None:
                instances.append(instance)
        if instances:
            logger.info(
                "Event %s (organization_id=%s) started %d execution(s)",
                event.type,
                event.organization_id,
                len(instances),
            )
        return instances

    def _initial_context(self, event: TriggerEvent, instance_id: str) -> dict[str, Any]:
        context = dict(event.payload)
        context[CTX_EVENT_TYPE] = event.type
        context[CTX_ORGANIZATION_ID] = event.organization_id
        context[CTX_EXECUTION_ID] = instance_id
        if event.entity_id is not None:
            context[CTX_ENTITY_ID] = event.entity_id
        return context

    async def _start(self, workflow: WorkflowEntity, event: TriggerEvent) -> ExecutionInstance | None:
        version = await self.version_repo.get_by_id(workflow.published_version_id)
        if version is None:
            logger.error(
                "Workflow %s points at missing published version %s; skipping",
                workflow.id,
                workflow.published_version_id,
            )
            return None

        instance_id = generate_cuid()
        instance = ExecutionInstance(
            id=instance_id,
            organization_id=workflow.organization_id,
            workflow_id=workflow.id,
            version_id=version.id,
            event_type=event.type,
            context=self._initial_context(event, instance_id),
            entity_id=event.entity_id,
            created_at=utc_now(),
        )
        instance = await self.execution_repo.create(instance)
        token = CancellationToken()
        self._tokens[instance.id] = token
        graph = version.graph
        rejection: str | None = None
        if self.pool.closed:
            rejection = SHUTDOWN_REASON
        else:
            try:
                self.pool.submit(
                    workflow.organization_id,
                    lambda: self._execute(instance, graph, token),
                    name=f"execution-{instance.id}",
                )
            except DispatchCapacityException as e:
                rejection = e.message
        if rejection is not None:
            self._tokens.pop(instance.id, None)
            logger.warning("Rejected execution of workflow %s: %s", workflow.id, rejection)
            instance.transition_to(ExecutionStatus.CANCELLED, rejection)
            instance = await self.execution_repo.update(instance)
        return instance

    async def _execute(
        self, instance: ExecutionInstance, graph: WorkflowGraph, token: CancellationToken
    ) -> ExecutionInstance:
        try:
            return await self.engine.run(instance, graph, cancel_token=token)
        finally:
            self._tokens.pop(instance.id, None)

    def cancel(self, instance_id: str, reason: str = "Cancelled by request") -> bool:
        """Signal cancellation to a scheduled or running instance. False if it is not in flight."""
        token = self._tokens.get(instance_id)
        if token is None:
            return False
        token.cancel(reason)
        logger.info("Cancellation requested for execution %s", instance_id)
        return True

    @property
    def in_flight(self) -> int:
        return len(self._tokens)

    async def _drain_subscribers(self) -> None:
        while self._subscriber_tasks:
            await asyncio.gather(*list(self._subscriber_tasks), return_exceptions=True)

    async def drain(self) -> None:
        """Wait for pending subscriber callbacks and every scheduled execution."""
        await self._drain_subscribers()
        await self.pool.drain()

    async def shutdown(self) -> None:
        """Cancel in-flight executions, then wait for them to record their final status.

        Events dispatched afterwards still create their instances, already
        cancelled with the shutdown reason.
        """
        for token in list(self._tokens.values()):
            token.cancel(SHUTDOWN_REASON)
        await self.pool.close()
        await self._drain_subscribers()
