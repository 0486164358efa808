"""Pytest configuration and fixtures for autoflow.

Unit tests run against the in-memory backend. SQL repository tests use
the sql_session_factory fixture: a fresh sqlite+aiosqlite in-memory
database per test, schema created from the ORM metadata. Mark them with
@pytest.mark.requires_db; run without them via: pytest -m 'not requires_db'.
"""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from autoflow.application.services.builtin_handlers import register_builtin_handlers
from autoflow.application.services.graph_validator import GraphValidator
from autoflow.application.services.handler_registry import HandlerRegistry
from autoflow.application.services.permission_service import PermissionService
from autoflow.application.services.version_manager import VersionManager
from autoflow.core.config import get_settings
from autoflow.domain.enums import WorkflowRole
from autoflow.infrastructure.memory.repositories import (
    InMemoryExecutionRepository,
    InMemoryPermissionRepository,
    InMemoryStore,
    InMemoryWorkflowRepository,
    InMemoryWorkflowVersionRepository,
)
from tests.helpers import ORG, OWNER, RecordingHandler


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached per process; tests that set AUTOFLOW_* env vars get a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def action_handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def registry(action_handler: RecordingHandler) -> HandlerRegistry:
    """Built-ins plus a recording 'action' handler; left unfrozen so tests can add types."""
    reg = HandlerRegistry()
    register_builtin_handlers(reg)
    reg.register("action", action_handler)
    return reg


@pytest.fixture
def validator(registry: HandlerRegistry) -> GraphValidator:
    return GraphValidator(registry)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def workflow_repo(store: InMemoryStore) -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository(store)


@pytest.fixture
def version_repo(store: InMemoryStore) -> InMemoryWorkflowVersionRepository:
    return InMemoryWorkflowVersionRepository(store)


@pytest.fixture
def execution_repo(store: InMemoryStore) -> InMemoryExecutionRepository:
    return InMemoryExecutionRepository(store)


@pytest.fixture
def permission_repo(store: InMemoryStore) -> InMemoryPermissionRepository:
    return InMemoryPermissionRepository(store)


@pytest.fixture
async def permissions(
    permission_repo: InMemoryPermissionRepository,
    workflow_repo: InMemoryWorkflowRepository,
) -> PermissionService:
    """Permission service where OWNER is admin of ORG."""
    service = PermissionService(permission_repo, workflow_repo)
    await service.set_organization_role(ORG, OWNER, WorkflowRole.ADMIN)
    return service


@pytest.fixture
def version_manager(
    workflow_repo: InMemoryWorkflowRepository,
    version_repo: InMemoryWorkflowVersionRepository,
    validator: GraphValidator,
    permissions: PermissionService,
) -> VersionManager:
    return VersionManager(workflow_repo, version_repo, validator, permissions)


@pytest.fixture
async def sql_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory over a private in-memory SQLite database with the full schema."""
    pytest.importorskip("aiosqlite")
    from autoflow.infrastructure.persistence import models  # noqa: F401
    from autoflow.infrastructure.persistence.database import Base, build_session_factory

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()
