"""Base repository: one short transaction per call on a shared session factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autoflow.infrastructure.persistence.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base SQL repository.

    Repositories never hold a session between calls: execution instances run
    concurrently on one event loop and an AsyncSession must not be shared
    across tasks. Subclasses convert ORM rows to domain entities before
    returning, so nothing leaves a repository attached to a session.
    """

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession], model: type[ModelType]
    ) -> None:
        self.session_factory = session_factory
        self.model = model

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Session with a transaction committed on success, rolled back on error."""
        async with self.session_factory() as session, session.begin():
            yield session

    async def _get_model(self, session: AsyncSession, *primary_key: Any) -> ModelType | None:
        key = primary_key[0] if len(primary_key) == 1 else primary_key
        return await session.get(self.model, key)
