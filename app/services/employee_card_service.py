import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.exceptions import ResourceNotFoundError
from app.db.repositories.employee_card_repo import EmployeeCardRepository
from app.models.employee_card import EmployeeCard
from app.models.enums import CardStatus

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def calculate_expiry_date(issued_at: datetime, validity_days: Optional[int] = None) -> datetime:
    if validity_days is None:
        validity_days = get_settings().BADGE_VALIDITY_DAYS
    return as_utc(issued_at) + timedelta(days=validity_days)


def check_pass_status(card: EmployeeCard, now: Optional[datetime] = None) -> CardStatus:
    """Effective status: revoked wins, then expiry, else active."""
    if card.status == CardStatus.REVOKED.value:
        return CardStatus.REVOKED
    now = as_utc(now or datetime.now(timezone.utc))
    if now > as_utc(card.expires_at):
        return CardStatus.EXPIRED
    return CardStatus.ACTIVE


class EmployeeCardService:
    """Lifecycle operations on issued cards."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = EmployeeCardRepository(db)

    async def get_card(self, employee_id: str) -> EmployeeCard:
        card = await self.repo.get_by_employee_id(employee_id)
        if card is None:
            raise ResourceNotFoundError(f"Employee card {employee_id} not found")
        return card

    async def get_current_card(self, user_id: str) -> EmployeeCard:
        """The user's latest card with its stored status refreshed."""
        card = await self.repo.get_latest_for_user(user_id)
        if card is None:
            raise ResourceNotFoundError("No employee card issued for this user")
        return await self.refresh_status(card)

    async def refresh_status(self, card: EmployeeCard) -> EmployeeCard:
        effective = check_pass_status(card)
        if effective.value != card.status:
            card.status = effective.value
            card = await self.repo.update(card)
        return card

    async def update_status(self, employee_id: str, status: CardStatus) -> EmployeeCard:
        card = await self.get_card(employee_id)
        card.status = status.value
        if status == CardStatus.REVOKED:
            card.revoked_at = datetime.now(timezone.utc)
        else:
            card.revoked_at = None
        logger.info(f"Card {employee_id} status set to {status.value}")
        return await self.repo.update(card)

    async def expire_cards(self, now: Optional[datetime] = None) -> List[EmployeeCard]:
        """Mark active cards past their expiry date as expired."""
        now = as_utc(now or datetime.now(timezone.utc))
        cards = await self.repo.list_expired_active(now)
        for card in cards:
            card.status = CardStatus.EXPIRED.value
        if cards:
            await self.db.flush()
            logger.info(f"Expired {len(cards)} employee cards")
        return cards
