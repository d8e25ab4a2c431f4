from datetime import datetime
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.employee_card import EmployeeCard
from app.models.enums import CardStatus


class EmployeeCardRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_employee_id(self, employee_id: str) -> Optional[EmployeeCard]:
        """Get card by employee identifier."""
        result = await self.db.execute(
            select(EmployeeCard).where(EmployeeCard.employee_id == employee_id)
        )
        return result.scalar_one_or_none()

    async def get_latest_for_user(self, user_id: str) -> Optional[EmployeeCard]:
        """Get the most recently issued card for a user."""
        result = await self.db.execute(
            select(EmployeeCard)
            .where(EmployeeCard.user_id == user_id)
            .order_by(EmployeeCard.issued_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_employee_ids_for_year(self, year: int) -> List[str]:
        """Range query over identifiers issued in a given year."""
        result = await self.db.execute(
            select(EmployeeCard.employee_id).where(
                EmployeeCard.employee_id >= f"EMP{year}0001",
                EmployeeCard.employee_id <= f"EMP{year}9999",
            )
        )
        return list(result.scalars().all())

    async def list_expired_active(self, now: datetime) -> List[EmployeeCard]:
        """Active cards whose expiry date has passed."""
        result = await self.db.execute(
            select(EmployeeCard).where(
                EmployeeCard.status == CardStatus.ACTIVE.value,
                EmployeeCard.expires_at < now,
            )
        )
        return list(result.scalars().all())

    async def create(
        self,
        employee_id: str,
        name: str,
        department: str,
        workplace: str,
        issued_at: datetime,
        expires_at: datetime,
        user_id: Optional[str] = None,
        company_name: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> EmployeeCard:
        """Create a new card record."""
        card = EmployeeCard(
            employee_id=employee_id,
            user_id=user_id,
            name=name,
            department=department,
            workplace=workplace,
            company_name=company_name,
            latitude=latitude,
            longitude=longitude,
            status=CardStatus.ACTIVE.value,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        self.db.add(card)
        await self.db.flush()
        await self.db.refresh(card)
        return card

    async def update(self, card: EmployeeCard) -> EmployeeCard:
        """Update a card."""
        await self.db.flush()
        await self.db.refresh(card)
        return card
