from typing import Optional, Dict, Any


class BadgeException(Exception):
    """Base exception for the badge issuance backend."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AllocationConflictError(BadgeException):
    """Raised when an employee identifier cannot be allocated without a collision."""

    pass


class BuildError(BadgeException):
    """Raised when an employee record cannot be turned into a pass descriptor."""

    pass


class PackagingFailure(BadgeException):
    """Raised when signing material is missing or pass assets cannot be assembled."""

    pass


class SignatureFailure(BadgeException):
    """Raised when the underlying signing operation fails."""

    pass


class ValidationFailure(BadgeException):
    """Raised when a produced artifact fails structural checks."""

    pass


class ResourceNotFoundError(BadgeException):
    """Raised when a requested resource is not found."""

    pass


class PermissionDeniedError(BadgeException):
    """Raised when user doesn't have permission for an action."""

    pass
