"""Base repository class for data access patterns."""

from abc import ABC
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pha.models.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseRepository(ABC, Generic[ModelType]):
    """Base repository providing common CRUD operations.

    Repositories only flush. Committing is the caller's decision, because the
    submission workflow needs every store step to be its own transaction.
    """

    def __init__(self, db: AsyncSession, model: type[ModelType]):
        self.db = db
        self.model = model

    @property
    def dialect_name(self) -> str:
        """Name of the dialect behind the session (``postgresql``, ``sqlite``)."""
        return self.db.get_bind().dialect.name

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """Get a single record by ID."""
        result = await self.db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def count(self) -> int:
        """Count total records."""
        result = await self.db.execute(select(func.count()).select_from(self.model))
        return result.scalar_one()

    async def create(self, **kwargs) -> ModelType:
        """Create a new record."""
        instance = self.model(**kwargs)
        self.db.add(instance)
        await self.db.flush()
        await self.db.refresh(instance)
        return instance
