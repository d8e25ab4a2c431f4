from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import UserRole
from app.models.user import User


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_firebase_uid(self, firebase_uid: str) -> Optional[User]:
        """Get user by Firebase UID."""
        result = await self.db.execute(
            select(User).where(User.firebase_uid == firebase_uid)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        firebase_uid: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
        role: UserRole = UserRole.EMPLOYEE,
    ) -> User:
        """Create a new user; everyone starts as a plain employee."""
        user = User(
            firebase_uid=firebase_uid,
            email=email,
            display_name=display_name,
            role=role.value,
        )
        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)
        return user
