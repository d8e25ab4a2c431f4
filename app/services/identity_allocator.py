import logging
import re
import time
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError, OperationalError, InterfaceError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AllocationConflictError
from app.db.repositories.employee_card_repo import EmployeeCardRepository
from app.db.repositories.employee_id_sequence_repo import EmployeeIdSequenceRepository

logger = logging.getLogger(__name__)

MAX_SEQUENCE = 9999


def format_employee_id(year: int, sequence: int) -> str:
    return f"EMP{year}{sequence:04d}"


def parse_sequence(employee_id: str, year: int) -> Optional[int]:
    """Return the 4-digit sequence of an identifier issued in `year`, else None."""
    match = re.fullmatch(rf"EMP{year}(\d{{4}})", employee_id or "")
    return int(match.group(1)) if match else None


def next_employee_id(year: int, existing_ids: Iterable[str]) -> str:
    """
    Next identifier after the highest sequence already issued in `year`.

    Gaps left by earlier identifiers are never refilled.
    """
    sequences = [s for s in (parse_sequence(i, year) for i in existing_ids) if s is not None]
    next_number = max(sequences, default=0) + 1
    if next_number > MAX_SEQUENCE:
        raise AllocationConflictError(
            f"Employee identifier space for {year} is exhausted",
            details={"year": year, "error_type": "exhausted"},
        )
    return format_employee_id(year, next_number)


def fallback_employee_id() -> str:
    """Out-of-band identifier from the clock, used when the store is unreachable."""
    return f"EMP{time.time_ns() // 1_000_000}"


class IdentityAllocator:
    """Allocates EMP<year><seq> identifiers against a durable per-year counter."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.sequence_repo = EmployeeIdSequenceRepository(db)
        self.card_repo = EmployeeCardRepository(db)

    async def _allocate_once(self, year: int) -> str:
        value = await self.sequence_repo.increment(year)

        if value is None:
            # First allocation of the year: seed the counter from issued cards
            existing = await self.card_repo.list_employee_ids_for_year(year)
            employee_id = next_employee_id(year, existing)
            try:
                await self.sequence_repo.seed(year, parse_sequence(employee_id, year))
            except IntegrityError:
                raise AllocationConflictError(
                    f"Concurrent counter initialisation for {year}",
                    details={"year": year, "error_type": "race"},
                )
            return employee_id

        if value > MAX_SEQUENCE:
            raise AllocationConflictError(
                f"Employee identifier space for {year} is exhausted",
                details={"year": year, "error_type": "exhausted"},
            )
        return format_employee_id(year, value)

    async def allocate(self, year: Optional[int] = None) -> str:
        """
        Allocate the next identifier for `year` (default: current UTC year).

        An allocation conflict is retried once with a fresh read of the
        counter. If the store is unreachable a clock-derived fallback is
        returned instead.
        """
        year = year or datetime.now(timezone.utc).year

        try:
            try:
                employee_id = await self._allocate_once(year)
            except AllocationConflictError as e:
                if e.details.get("error_type") == "exhausted":
                    raise
                logger.info(f"Allocation conflict for {year}, retrying once")
                employee_id = await self._allocate_once(year)
        except (OperationalError, InterfaceError) as e:
            employee_id = fallback_employee_id()
            logger.warning(
                f"Identifier store unavailable ({type(e).__name__}), "
                f"using fallback identifier {employee_id}"
            )

        logger.info(f"Allocated employee identifier {employee_id}")
        return employee_id
