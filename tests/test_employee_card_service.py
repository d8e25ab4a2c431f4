"""Tests for badge lifecycle: expiry, revocation and the expiry sweep."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ResourceNotFoundError
from app.db.repositories.employee_card_repo import EmployeeCardRepository
from app.models.employee_card import EmployeeCard
from app.models.enums import CardStatus
from app.models.user import User
from app.services.employee_card_service import (
    EmployeeCardService,
    calculate_expiry_date,
    check_pass_status,
)


async def _create_card(session, employee_id, issued_at, user_id=None, validity_days=365):
    return await EmployeeCardRepository(session).create(
        employee_id=employee_id,
        user_id=user_id,
        name="Kim Minjun",
        department="Engineering",
        workplace="Main Office",
        issued_at=issued_at,
        expires_at=issued_at + timedelta(days=validity_days),
    )


def test_calculate_expiry_date(issued_at):
    assert calculate_expiry_date(issued_at, 365) == datetime(2025, 3, 4, 9, 30, tzinfo=timezone.utc)


def test_calculate_expiry_date_naive_is_utc():
    expiry = calculate_expiry_date(datetime(2024, 1, 1), 30)
    assert expiry == datetime(2024, 1, 31, tzinfo=timezone.utc)


def test_check_pass_status(issued_at):
    card = EmployeeCard(status=CardStatus.ACTIVE.value, expires_at=issued_at + timedelta(days=365))

    assert check_pass_status(card, now=issued_at) == CardStatus.ACTIVE
    assert check_pass_status(card, now=issued_at + timedelta(days=366)) == CardStatus.EXPIRED

    card.status = CardStatus.REVOKED.value
    assert check_pass_status(card, now=issued_at) == CardStatus.REVOKED


@pytest.mark.asyncio
async def test_get_card_not_found(test_session: AsyncSession):
    with pytest.raises(ResourceNotFoundError):
        await EmployeeCardService(test_session).get_card("EMP20249999")


@pytest.mark.asyncio
async def test_revoke_and_reactivate(test_session: AsyncSession, issued_at):
    await _create_card(test_session, "EMP20240001", issued_at)
    service = EmployeeCardService(test_session)

    card = await service.update_status("EMP20240001", CardStatus.REVOKED)
    assert card.status == CardStatus.REVOKED.value
    assert card.revoked_at is not None

    card = await service.update_status("EMP20240001", CardStatus.ACTIVE)
    assert card.status == CardStatus.ACTIVE.value
    assert card.revoked_at is None


@pytest.mark.asyncio
async def test_expire_cards(test_session: AsyncSession):
    now = datetime.now(timezone.utc)
    await _create_card(test_session, "EMP20230001", now - timedelta(days=400))
    await _create_card(test_session, "EMP20240001", now - timedelta(days=10))
    revoked = await _create_card(test_session, "EMP20230002", now - timedelta(days=500))
    revoked.status = CardStatus.REVOKED.value
    await test_session.flush()

    expired = await EmployeeCardService(test_session).expire_cards(now)

    assert [card.employee_id for card in expired] == ["EMP20230001"]
    assert expired[0].status == CardStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_current_card_refreshes_status(test_session: AsyncSession, test_user: User):
    now = datetime.now(timezone.utc)
    await _create_card(test_session, "EMP20230001", now - timedelta(days=400), user_id=test_user.id)

    card = await EmployeeCardService(test_session).get_current_card(test_user.id)

    assert card.employee_id == "EMP20230001"
    assert card.status == CardStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_current_card_is_latest(test_session: AsyncSession, test_user: User):
    now = datetime.now(timezone.utc)
    await _create_card(test_session, "EMP20230001", now - timedelta(days=400), user_id=test_user.id)
    await _create_card(test_session, "EMP20240001", now - timedelta(days=1), user_id=test_user.id)

    card = await EmployeeCardService(test_session).get_current_card(test_user.id)

    assert card.employee_id == "EMP20240001"
    assert card.status == CardStatus.ACTIVE.value
