"""Tests for employee identifier allocation."""
import re
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AllocationConflictError
from app.db.repositories.employee_card_repo import EmployeeCardRepository
from app.db.repositories.employee_id_sequence_repo import EmployeeIdSequenceRepository
from app.services.identity_allocator import (
    IdentityAllocator,
    fallback_employee_id,
    next_employee_id,
    parse_sequence,
)


async def _add_card(session: AsyncSession, employee_id: str):
    issued_at = datetime(2024, 1, 2, tzinfo=timezone.utc)
    return await EmployeeCardRepository(session).create(
        employee_id=employee_id,
        name="Existing Employee",
        department="Operations",
        workplace="Main Office",
        issued_at=issued_at,
        expires_at=issued_at + timedelta(days=365),
    )


def test_next_employee_id_first_of_year():
    assert next_employee_id(2024, []) == "EMP20240001"


def test_next_employee_id_after_existing():
    """Existing EMP20240001 and EMP20240002 yield EMP20240003."""
    assert next_employee_id(2024, ["EMP20240001", "EMP20240002"]) == "EMP20240003"


def test_next_employee_id_does_not_refill_gaps():
    assert next_employee_id(2024, ["EMP20240001", "EMP20240007"]) == "EMP20240008"


def test_next_employee_id_ignores_other_years_and_malformed_ids():
    existing = ["EMP20230042", "EMP1709251200000", "EMP2024001", "guest", "EMP20240003"]
    assert next_employee_id(2024, existing) == "EMP20240004"


def test_next_employee_id_exhausted():
    with pytest.raises(AllocationConflictError) as exc_info:
        next_employee_id(2024, ["EMP20249999"])

    assert exc_info.value.details["error_type"] == "exhausted"


def test_parse_sequence():
    assert parse_sequence("EMP20240012", 2024) == 12
    assert parse_sequence("EMP20240012", 2025) is None
    assert parse_sequence("EMP202400123", 2024) is None


def test_fallback_employee_id_format():
    employee_id = fallback_employee_id()
    assert re.fullmatch(r"EMP\d{13}", employee_id)


@pytest.mark.asyncio
async def test_allocate_seeds_counter_from_existing_cards(test_session: AsyncSession):
    """The first allocation of a year continues after the cards already issued."""
    await _add_card(test_session, "EMP20240001")
    await _add_card(test_session, "EMP20240002")

    allocator = IdentityAllocator(test_session)

    assert await allocator.allocate(2024) == "EMP20240003"
    assert await allocator.allocate(2024) == "EMP20240004"

    counter = await EmployeeIdSequenceRepository(test_session).get(2024)
    assert counter.last_value == 4


@pytest.mark.asyncio
async def test_allocate_years_are_independent(test_session: AsyncSession):
    allocator = IdentityAllocator(test_session)

    assert await allocator.allocate(2024) == "EMP20240001"
    assert await allocator.allocate(2025) == "EMP20250001"
    assert await allocator.allocate(2024) == "EMP20240002"


@pytest.mark.asyncio
async def test_allocate_values_are_unique(test_session: AsyncSession):
    allocator = IdentityAllocator(test_session)

    ids = [await allocator.allocate(2024) for _ in range(20)]

    assert len(set(ids)) == 20
    assert ids[-1] == "EMP20240020"


@pytest.mark.asyncio
async def test_allocate_exhausted_counter(test_session: AsyncSession):
    await EmployeeIdSequenceRepository(test_session).seed(2024, 9999)
    allocator = IdentityAllocator(test_session)

    with pytest.raises(AllocationConflictError) as exc_info:
        await allocator.allocate(2024)

    assert exc_info.value.details["error_type"] == "exhausted"


@pytest.mark.asyncio
async def test_allocate_retries_once_after_losing_seed_race(test_session: AsyncSession):
    """A concurrent seed is detected and the retry reads the winner's counter."""
    allocator = IdentityAllocator(test_session)
    real_seed = allocator.sequence_repo.seed

    async def losing_seed(year, last_value):
        # another request initialises the counter first
        await real_seed(year, 3)
        raise IntegrityError(
            "INSERT INTO employee_id_sequences", {}, Exception("UNIQUE constraint failed")
        )

    with patch.object(allocator.sequence_repo, "seed", side_effect=losing_seed) as seed_mock:
        employee_id = await allocator.allocate(2024)

    assert employee_id == "EMP20240004"
    assert seed_mock.call_count == 1


@pytest.mark.asyncio
async def test_allocate_gives_up_after_second_conflict(test_session: AsyncSession):
    allocator = IdentityAllocator(test_session)
    conflict = AllocationConflictError("race", details={"error_type": "race"})

    with patch.object(
        allocator, "_allocate_once", AsyncMock(side_effect=[conflict, conflict])
    ) as once:
        with pytest.raises(AllocationConflictError):
            await allocator.allocate(2024)

    assert once.call_count == 2


@pytest.mark.asyncio
async def test_allocate_does_not_retry_exhaustion(test_session: AsyncSession):
    allocator = IdentityAllocator(test_session)
    exhausted = AllocationConflictError("full", details={"error_type": "exhausted"})

    with patch.object(allocator, "_allocate_once", AsyncMock(side_effect=exhausted)) as once:
        with pytest.raises(AllocationConflictError):
            await allocator.allocate(2024)

    assert once.call_count == 1


@pytest.mark.asyncio
async def test_allocate_falls_back_when_store_unavailable(test_session: AsyncSession):
    allocator = IdentityAllocator(test_session)
    outage = OperationalError("UPDATE employee_id_sequences", {}, Exception("connection refused"))

    with patch.object(allocator.sequence_repo, "increment", AsyncMock(side_effect=outage)):
        employee_id = await allocator.allocate(2024)

    assert re.fullmatch(r"EMP\d{13}", employee_id)
