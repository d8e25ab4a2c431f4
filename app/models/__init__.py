from app.models.user import User
from app.models.employee_card import EmployeeCard
from app.models.employee_id_sequence import EmployeeIdSequence
from app.models.enums import CardStatus, WalletPlatform, UserRole

__all__ = [
    "User",
    "EmployeeCard",
    "EmployeeIdSequence",
    "CardStatus",
    "WalletPlatform",
    "UserRole",
]
