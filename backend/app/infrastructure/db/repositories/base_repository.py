"""
Base Repository for TaskiSpace Billing

Repositories open one short-lived session per operation through an injected
session factory, so independent reads can run concurrently and tests can
substitute their own factory.
"""

from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncGenerator, Callable, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.database import get_session_context
from app.infrastructure.exceptions import DatabaseError


SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


def as_uuid(value: Union[str, UUID]) -> UUID:
    """Convert string IDs to UUID for PostgreSQL compatibility."""
    return value if isinstance(value, UUID) else UUID(value)


class BaseRepository:
    """
    Shared session handling for repositories.

    Subclasses set ``table`` for error reporting and run queries inside
    ``self._session(operation)``; driver errors surface as DatabaseError.
    """

    table: str = ""

    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            raise DatabaseError(
                f"Failed to {operation} on {self.table}: {e}",
                operation=operation,
                table=self.table,
                original_error=e,
            ) from e
