from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.employee_id_sequence import EmployeeIdSequence


class EmployeeIdSequenceRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, year: int) -> Optional[EmployeeIdSequence]:
        """Get the counter row for a year."""
        result = await self.db.execute(
            select(EmployeeIdSequence).where(EmployeeIdSequence.year == year)
        )
        return result.scalar_one_or_none()

    async def increment(self, year: int) -> Optional[int]:
        """
        Atomically increment the year's counter and return the new value.

        Returns None when no counter row exists for the year yet.
        """
        result = await self.db.execute(
            update(EmployeeIdSequence)
            .where(EmployeeIdSequence.year == year)
            .values(last_value=EmployeeIdSequence.last_value + 1)
            .returning(EmployeeIdSequence.last_value)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def seed(self, year: int, last_value: int) -> EmployeeIdSequence:
        """
        Insert the counter row for a year inside a savepoint.

        Raises IntegrityError if a concurrent request seeded the year first.
        """
        record = EmployeeIdSequence(year=year, last_value=last_value)
        async with self.db.begin_nested():
            self.db.add(record)
            await self.db.flush()
        return record
