"""Runtime wiring: startup and shutdown.

Single place for building the engine's object graph from Settings. No
business logic here, only wiring of the handler registry, repositories for
the configured storage backend, services, worker pool, dispatcher, the
shared HTTP client and telemetry.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from autoflow.application.interfaces.repositories import (
    IExecutionRepository,
    IPermissionRepository,
    IWorkflowRepository,
    IWorkflowVersionRepository,
)
from autoflow.application.services.builtin_handlers import register_builtin_handlers
from autoflow.application.services.execution_stats import ExecutionStatsService
from autoflow.application.services.graph_validator import GraphValidator
from autoflow.application.services.handler_registry import HandlerRegistry
from autoflow.application.services.permission_service import PermissionService
from autoflow.application.services.suggestion_service import (
    RuleBasedSuggestionProvider,
    SuggestionService,
)
from autoflow.application.services.trigger_config_resolver import TriggerConfigResolver
from autoflow.application.services.version_manager import VersionManager
from autoflow.core.config import Settings, get_settings
from autoflow.infrastructure.external.llm_suggestion_provider import LLMSuggestionProvider
from autoflow.infrastructure.services.trigger_dispatcher import TriggerDispatcher
from autoflow.infrastructure.services.worker_pool import OrganizationWorkerPool
from autoflow.infrastructure.services.workflow_engine import WorkflowEngine
from autoflow.shared.telemetry.telemetry import TelemetryConfig, get_telemetry, set_telemetry

logger = logging.getLogger(__name__)

HandlerRegistrationHook = Callable[[HandlerRegistry], None]
"""Collaborator hook: registers its node types on the (not yet frozen) registry."""


@dataclass
class _Repositories:
    workflows: IWorkflowRepository
    versions: IWorkflowVersionRepository
    executions: IExecutionRepository
    permissions: IPermissionRepository
    sql_engine: AsyncEngine | None = None


@dataclass
class AutomationRuntime:
    """Everything a host process needs to run the engine."""

    settings: Settings
    registry: HandlerRegistry
    validator: GraphValidator
    permissions: PermissionService
    versions: VersionManager
    engine: WorkflowEngine
    pool: OrganizationWorkerPool
    dispatcher: TriggerDispatcher
    stats: ExecutionStatsService
    suggestions: SuggestionService
    workflow_repo: IWorkflowRepository
    version_repo: IWorkflowVersionRepository
    execution_repo: IExecutionRepository
    permission_repo: IPermissionRepository
    http_client: httpx.AsyncClient
    sql_engine: AsyncEngine | None = None

    async def aclose(self) -> None:
        """Shutdown order: in-flight executions, HTTP client, SQL engine."""
        await self.dispatcher.shutdown()
        logger.info("Dispatcher stopped")
        await self.http_client.aclose()
        logger.info("Suggestion HTTP client closed")
        if self.sql_engine is not None:
            await self.sql_engine.dispose()
            logger.info("Database engine disposed")


def _build_repositories(settings: Settings) -> _Repositories:
    if settings.storage_backend == "sql":
        from autoflow.infrastructure.persistence.database import (
            build_engine,
            build_session_factory,
        )
        from autoflow.infrastructure.persistence.repositories import (
            ExecutionRepository,
            PermissionRepository,
            WorkflowRepository,
            WorkflowVersionRepository,
        )

        sql_engine = build_engine(settings)
        factory = build_session_factory(sql_engine)
        return _Repositories(
            workflows=WorkflowRepository(factory),
            versions=WorkflowVersionRepository(factory),
            executions=ExecutionRepository(factory),
            permissions=PermissionRepository(factory),
            sql_engine=sql_engine,
        )

    from autoflow.infrastructure.memory.repositories import (
        InMemoryExecutionRepository,
        InMemoryPermissionRepository,
        InMemoryStore,
        InMemoryWorkflowRepository,
        InMemoryWorkflowVersionRepository,
    )

    store = InMemoryStore()
    logger.warning("Using in-memory storage: workflows and executions are not durable")
    return _Repositories(
        workflows=InMemoryWorkflowRepository(store),
        versions=InMemoryWorkflowVersionRepository(store),
        executions=InMemoryExecutionRepository(store),
        permissions=InMemoryPermissionRepository(store),
    )


def create_runtime(
    settings: Settings | None = None,
    handler_registrations: Iterable[HandlerRegistrationHook] = (),
) -> AutomationRuntime:
    """Build the runtime from settings and collaborator hooks.

    Built-in handlers are registered first, then each hook in order; the
    registry is frozen before anything can dispatch.
    """
    settings = settings or get_settings()

    registry = HandlerRegistry()
    register_builtin_handlers(registry)
    for hook in handler_registrations:
        hook(registry)
    registry.freeze()

    repos = _build_repositories(settings)
    validator = GraphValidator(registry)
    permissions = PermissionService(
        repos.permissions,
        repos.workflows,
        default_organization_role=settings.default_organization_role,
    )
    versions = VersionManager(repos.workflows, repos.versions, validator, permissions)
    engine = WorkflowEngine(
        registry,
        repos.executions,
        node_timeout_seconds=settings.node_timeout_seconds,
    )
    pool = OrganizationWorkerPool(
        settings.max_concurrent_executions_per_organization,
        settings.max_queued_executions_per_organization,
    )
    dispatcher = TriggerDispatcher(
        repos.workflows,
        repos.versions,
        repos.executions,
        engine,
        pool,
        TriggerConfigResolver(),
    )

    # Shared HTTP client for suggestion calls (connection reuse).
    http_client = httpx.AsyncClient(timeout=settings.suggestion_timeout_seconds)
    api_key = settings.suggestion_api_key
    suggestions = SuggestionService(
        LLMSuggestionProvider(
            api_url=settings.suggestion_api_url,
            api_key=api_key.get_secret_value() if api_key else None,
            model=settings.suggestion_model,
            fallback=RuleBasedSuggestionProvider(),
            timeout_seconds=settings.suggestion_timeout_seconds,
            http_client=http_client,
        )
    )

    logger.info(
        "Automation runtime ready: backend=%s, node types=%d",
        settings.storage_backend,
        len(registry.node_types()),
    )
    return AutomationRuntime(
        settings=settings,
        registry=registry,
        validator=validator,
        permissions=permissions,
        versions=versions,
        engine=engine,
        pool=pool,
        dispatcher=dispatcher,
        stats=ExecutionStatsService(repos.executions),
        suggestions=suggestions,
        workflow_repo=repos.workflows,
        version_repo=repos.versions,
        execution_repo=repos.executions,
        permission_repo=repos.permissions,
        http_client=http_client,
        sql_engine=repos.sql_engine,
    )


@asynccontextmanager
async def runtime_lifespan(
    settings: Settings | None = None,
    handler_registrations: Iterable[HandlerRegistrationHook] = (),
) -> AsyncIterator[AutomationRuntime]:
    """Build the runtime, yield it, then shut it down.

    Startup order: telemetry (if enabled), runtime. Shutdown order:
    dispatcher (cancel and drain), HTTP client, SQL engine, telemetry.
    """
    settings = settings or get_settings()

    # ---- Startup ----
    if settings.telemetry_enabled:
        telemetry = TelemetryConfig(
            service_name=settings.app_name,
            service_version=settings.app_version,
            enabled=True,
            environment=settings.telemetry_environment,
        )
        telemetry.setup_telemetry(
            exporter_type=settings.telemetry_exporter,
            otlp_endpoint=settings.telemetry_otlp_endpoint,
            sample_rate=settings.telemetry_sample_rate,
        )
        set_telemetry(telemetry)
        logger.info("Telemetry initialized")

    runtime = create_runtime(settings, handler_registrations)
    telemetry_instance = get_telemetry()
    if telemetry_instance is not None and runtime.sql_engine is not None:
        telemetry_instance.instrument_sqlalchemy(runtime.sql_engine)

    try:
        yield runtime
    finally:
        # ---- Shutdown ----
        await runtime.aclose()
        telemetry_instance = get_telemetry()
        if telemetry_instance is not None:
            telemetry_instance.shutdown()
            set_telemetry(None)
