"""Practice and child lookups."""

from sqlalchemy.ext.asyncio import AsyncSession

from pha.models.practice import Child, Practice
from pha.repositories.base import BaseRepository


class PracticeRepository(BaseRepository[Practice]):
    def __init__(self, db: AsyncSession):
        super().__init__(db, Practice)


class ChildRepository(BaseRepository[Child]):
    def __init__(self, db: AsyncSession):
        super().__init__(db, Child)
