from enum import Enum


class CardStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class WalletPlatform(str, Enum):
    APPLE = "apple"
    GOOGLE = "google"


class UserRole(str, Enum):
    EMPLOYEE = "employee"
    ADMIN = "admin"
    HR = "hr"
    SYSTEM_ADMIN = "system_admin"


# Roles allowed to change card status and run expiry sweeps
CARD_ADMIN_ROLES = {UserRole.ADMIN, UserRole.HR, UserRole.SYSTEM_ADMIN}
