"""Base service over an async session factory.

Services open a short-lived session per operation instead of holding one
for their whole lifetime: a single workflow run writes its execution record
many times while other runs write theirs, and each write must commit on its
own.
"""

from typing import Any, Generic, Optional, Type, TypeVar
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.utils import utcnow
from db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseService(Generic[ModelType]):
    """Shared persistence helpers for one model.

    Usage:
        class JobService(BaseService[WorkflowJob]):
            def __init__(self, session_factory):
                super().__init__(WorkflowJob, session_factory)
    """

    def __init__(self, model: Type[ModelType], session_factory: async_sessionmaker[AsyncSession]):
        self.model = model
        self.session_factory = session_factory

    async def get_by(self, **filters: Any) -> Optional[ModelType]:
        """Get the first record whose columns equal the given values."""
        query = select(self.model)
        for field, value in filters.items():
            query = query.where(getattr(self.model, field) == value)
        async with self.session_factory() as session:
            result = await session.execute(query.limit(1))
            return result.scalar_one_or_none()

    async def create(self, data: dict[str, Any]) -> ModelType:
        """Insert and commit a new record."""
        data.setdefault("id", str(uuid4()))
        instance = self.model(**data)
        async with self.session_factory() as session:
            session.add(instance)
            await session.commit()
            await session.refresh(instance)
        return instance

    async def update_where(self, conditions: list, values: dict[str, Any]) -> int:
        """Apply ``values`` to every row matching all ``conditions``.

        This is a single ``UPDATE ... WHERE``, so a condition on the current
        status doubles as a compare-and-set.

        Returns:
            Number of rows changed
        """
        async with self.session_factory() as session:
            result = await session.execute(
                update(self.model)
                .where(*conditions)
                .values(**{"updated_at": utcnow(), **values})
            )
            await session.commit()
        return result.rowcount
