"""Execution engine: walks one workflow version for one execution instance.

The walk is causal: nodes are visited in topological order and a node runs
only when a predecessor activated it (the trigger is activated first), so
each node runs at most once and always after everything that feeds it.
Every handler call races the instance's cancellation token and the
per-node timeout. Each step is appended to the execution log before the
walk advances, except completed routing steps (condition, ab_test): their
chosen branch goes into the context under `_routes` instead. Failures are
isolated to the instance: nothing a handler does can raise out of run().
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any

from autoflow.application.dtos.execution import HandlerResult
from autoflow.application.interfaces.repositories import IExecutionRepository
from autoflow.application.services.builtin_handlers import (
    CTX_EXECUTION_ID,
    CTX_LAST_ERROR,
    CTX_ROUTES,
)
from autoflow.application.services.cycle_detector import topological_order
from autoflow.application.services.handler_registry import HandlerRegistry
from autoflow.domain.entities.execution import ExecutionInstance, ExecutionLogEntry
from autoflow.domain.entities.graph import Edge, Node, WorkflowGraph
from autoflow.domain.enums import BRANCH_ERROR
from autoflow.domain.exceptions import ExecutionException
from autoflow.infrastructure.services.workflow_template_renderer import (
    WorkflowTemplateRenderer,
)
from autoflow.shared.cancellation import CancellationToken
from autoflow.shared.enums import ExecutionStatus, StepStatus
from autoflow.shared.telemetry.logging import get_logger
from autoflow.shared.telemetry.tracing import TracedOperation, add_span_attributes, traced
from autoflow.shared.utils.datetime import utc_now
from autoflow.shared.utils.generators import generate_cuid

logger = get_logger(__name__)


def _json_safe(value: dict[str, Any]) -> dict[str, Any]:
    """Detached, JSON-serializable copy for log snapshots and persisted context."""
    return json.loads(json.dumps(value, default=str))


def _consume_abandoned(task: asyncio.Task) -> None:
    """Retrieve the outcome of a handler task the engine stopped waiting for."""
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Abandoned handler task raised: %s", task.exception())


@dataclass(frozen=True)
class _StepOutcome:
    status: StepStatus
    result: HandlerResult | None
    error: ExecutionException | None
    output_snapshot: dict[str, Any]


class WorkflowEngine:
    """Runs execution instances against the handler registry."""

    def __init__(
        self,
        registry: HandlerRegistry,
        execution_repo: IExecutionRepository,
        *,
        node_timeout_seconds: float = 30.0,
        renderer: WorkflowTemplateRenderer | None = None,
        dry_run: bool = False,
    ) -> None:
        self.registry = registry
        self.execution_repo = execution_repo
        self.node_timeout_seconds = node_timeout_seconds
        self.renderer = renderer or WorkflowTemplateRenderer()
        self.dry_run = dry_run

    @traced("workflow_engine.run")
    async def run(
        self,
        instance: ExecutionInstance,
        graph: WorkflowGraph,
        *,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> ExecutionInstance:
        """Execute a pending instance to a terminal status and return it.

        If the task running this coroutine is itself cancelled, the instance
        is recorded as cancelled and CancelledError is re-raised.
        """
        token = cancel_token or CancellationToken()
        node_timeout = timeout if timeout is not None else self.node_timeout_seconds
        add_span_attributes(
            instance_id=instance.id,
            workflow_id=instance.workflow_id,
            organization_id=instance.organization_id,
        )

        if token.cancelled:
            instance.transition_to(
                ExecutionStatus.CANCELLED, token.reason or "Cancelled before start"
            )
            return await self.execution_repo.update(instance)

        instance.transition_to(ExecutionStatus.RUNNING)
        await self.execution_repo.update(instance)
        context = dict(instance.context)
        context.setdefault(CTX_EXECUTION_ID, instance.id)

        try:
            status, error_message = await self._walk(instance, graph, context, token, node_timeout)
        except asyncio.CancelledError:
            token.cancel("Execution task was cancelled")
            await self._finish(
                instance, context, ExecutionStatus.CANCELLED, "Execution task was cancelled"
            )
            raise
        except Exception as e:
            logger.exception(
                "Execution %s of workflow %s failed unexpectedly (organization_id=%s)",
                instance.id,
                instance.workflow_id,
                instance.organization_id,
            )
            status, error_message = ExecutionStatus.FAILED, f"Internal error: {e}"

        return await self._finish(instance, context, status, error_message)

    async def _finish(
        self,
        instance: ExecutionInstance,
        context: dict[str, Any],
        status: ExecutionStatus,
        error_message: str | None,
    ) -> ExecutionInstance:
        instance.context = _json_safe(context)
        instance.transition_to(status, error_message)
        logger.info(
            "Execution %s of workflow %s finished: %s",
            instance.id,
            instance.workflow_id,
            status.value,
        )
        return await self.execution_repo.update(instance)

    async def _walk(
        self,
        instance: ExecutionInstance,
        graph: WorkflowGraph,
        context: dict[str, Any],
        token: CancellationToken,
        node_timeout: float,
    ) -> tuple[ExecutionStatus, str | None]:
        triggers = graph.trigger_nodes()
        if len(triggers) != 1:
            return ExecutionStatus.FAILED, "Workflow graph must have exactly one trigger node"
        nodes = graph.node_map()
        activated = {triggers[0].id}
        sequence = 0

        for node_id in topological_order(graph.nodes, graph.edges):
            if node_id not in activated:
                continue
            if token.cancelled:
                return ExecutionStatus.CANCELLED, token.reason or "Cancelled"
            node = nodes[node_id]
            started_at = utc_now()
            input_snapshot = _json_safe(context)
            outcome = await self._run_step(node, context, token, node_timeout)
            if outcome.status == StepStatus.COMPLETED and self.registry.is_routing(node.type):
                routes = dict(context.get(CTX_ROUTES) or {})
                routes[node.id] = outcome.result.next_branch
                context[CTX_ROUTES] = routes
            else:
                sequence += 1
                await self.execution_repo.append_log(
                    ExecutionLogEntry(
                        id=generate_cuid(),
                        instance_id=instance.id,
                        sequence=sequence,
                        node_id=node.id,
                        node_type=node.type,
                        status=outcome.status,
                        input_snapshot=input_snapshot,
                        output_snapshot=outcome.output_snapshot,
                        branch=outcome.result.next_branch if outcome.result else None,
                        error=outcome.error.message if outcome.error else None,
                        started_at=started_at,
                        completed_at=utc_now(),
                    )
                )

            if outcome.status == StepStatus.CANCELLED:
                return ExecutionStatus.CANCELLED, token.reason or "Cancelled"
            if outcome.status == StepStatus.COMPLETED:
                context.update(outcome.result.output_context)
                targets = self._next_targets(graph, node, outcome.result.next_branch)
            else:
                error_edges = [e for e in graph.outgoing(node.id) if e.branch == BRANCH_ERROR]
                if not error_edges:
                    return ExecutionStatus.FAILED, outcome.error.message
                context[CTX_LAST_ERROR] = {
                    "node_id": node.id,
                    "node_type": node.type,
                    "message": outcome.error.message,
                }
                targets = [e.target for e in error_edges]
            activated.update(targets)

        return ExecutionStatus.COMPLETED, None

    def _next_targets(
        self, graph: WorkflowGraph, node: Node, branch: str | None
    ) -> list[str]:
        """Targets of edges labelled branch (unlabelled edges when branch is None)."""
        edges: list[Edge] = [
            e for e in graph.outgoing(node.id) if e.branch != BRANCH_ERROR and e.branch == branch
        ]
        return [e.target for e in edges]

    async def _run_step(
        self,
        node: Node,
        context: dict[str, Any],
        token: CancellationToken,
        node_timeout: float,
    ) -> _StepOutcome:
        with TracedOperation(
            "workflow_engine.node", {"node_id": node.id, "node_type": node.type}
        ) as op:
            outcome = await self._invoke(node, context, token, node_timeout)
            if outcome.error is not None:
                op.mark_error(outcome.error.message)
            return outcome

    async def _invoke(
        self,
        node: Node,
        context: dict[str, Any],
        token: CancellationToken,
        node_timeout: float,
    ) -> _StepOutcome:
        def failed(message: str) -> _StepOutcome:
            logger.warning("Node %s (%s) failed: %s", node.id, node.type, message)
            return _StepOutcome(
                StepStatus.FAILED, None, ExecutionException(node.id, node.type, message), {}
            )

        try:
            registration = self.registry.get(node.type)
            call_node = node
            if registration.interpolate is True:
                call_node = Node(
                    id=node.id,
                    type=node.type,
                    data=self.renderer.render_data(node.data, context),
                )
            elif registration.interpolate:
                data = dict(node.data)
                for field in registration.interpolate & data.keys():
                    data[field] = self.renderer.render_data(data[field], context)
                call_node = Node(id=node.id, type=node.type, data=data)
        except Exception as e:
            return failed(str(e))

        if self.dry_run and not registration.control:
            return _StepOutcome(
                StepStatus.COMPLETED,
                HandlerResult(),
                None,
                _json_safe({"dry_run": True, "data": call_node.data}),
            )

        handler_task = asyncio.ensure_future(
            registration.handler.execute(call_node, dict(context), token)
        )
        cancel_waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {handler_task, cancel_waiter},
                timeout=node_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel_waiter.cancel()
            if not handler_task.done():
                handler_task.cancel()
                handler_task.add_done_callback(_consume_abandoned)

        if handler_task in done:
            try:
                result = handler_task.result()
            except asyncio.CancelledError:
                return _StepOutcome(StepStatus.CANCELLED, None, None, {})
            except Exception as e:
                return failed(str(e) or e.__class__.__name__)
            if result is None:
                result = HandlerResult()
            if not isinstance(result, HandlerResult):
                return failed(
                    f"Handler for {node.type!r} returned {type(result).__name__}, not HandlerResult"
                )
            return _StepOutcome(
                StepStatus.COMPLETED, result, None, _json_safe(result.output_context)
            )
        if token.cancelled:
            return _StepOutcome(StepStatus.CANCELLED, None, None, {})
        return failed(f"Node timed out after {node_timeout:g}s")


async def simulate(
    registry: HandlerRegistry,
    graph: WorkflowGraph,
    context: dict[str, Any] | None = None,
    *,
    dry_run: bool = True,
    node_timeout_seconds: float = 30.0,
) -> tuple[ExecutionInstance, list[ExecutionLogEntry]]:
    """Run a graph against throw-away in-memory stores (editor test mode).

    With dry_run, delegated handlers are not called: their step records the
    rendered node data instead. Control nodes always run for real.
    """
    from autoflow.infrastructure.memory.repositories import InMemoryExecutionRepository

    repo = InMemoryExecutionRepository()
    engine = WorkflowEngine(
        registry, repo, node_timeout_seconds=node_timeout_seconds, dry_run=dry_run
    )
    instance = ExecutionInstance(
        id=generate_cuid(),
        organization_id="simulation",
        workflow_id="simulation",
        version_id="simulation",
        event_type="simulation",
        context=dict(context or {}),
        created_at=utc_now(),
    )
    await repo.create(instance)
    finished = await engine.run(instance, graph)
    return finished, await repo.list_logs(finished.id)
