# orgguard/shared/exceptions.py
from fastapi import HTTPException, status


# Authentication & Authorization Exceptions
class UnauthenticatedError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required"
        )


class MissingOrganizationContextError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Organization ID required"
        )


class NotAMemberError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this organization",
        )


class ForbiddenError(HTTPException):
    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=message)


class PolicyResolutionError(HTTPException):
    def __init__(self, message: str = "Permission check failed") -> None:
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message
        )


class SelfActionError(HTTPException):
    def __init__(self, message: str = "Cannot perform this action on yourself") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


class OwnerRoleProtectedError(HTTPException):
    def __init__(
        self, message: str = "Only an owner can change ownership of an organization"
    ) -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=message)


class LastOwnerError(HTTPException):
    def __init__(self, message: str = "Cannot remove the last owner") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


# Resource Not Found Exceptions
class UserNotFoundError(HTTPException):
    def __init__(self) -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


class OrganizationNotFoundError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found"
        )


class MemberNotFoundError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND, detail="Member not found"
        )


class InvitationNotFoundError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found"
        )


class TeamNotFoundError(HTTPException):
    def __init__(self) -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")


# Conflict / Validation Exceptions
class DuplicateMembershipError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="User is already a member of this organization",
        )


class DuplicateInvitationError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="A pending invitation already exists for this email",
        )


class SlugTakenError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Organization slug already exists",
        )


class EmailTakenError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email address already in use",
        )


class OrganizationLimitError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organization limit reached",
        )


class InvitationExpiredError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_410_GONE, detail="Invitation has expired"
        )


class InvalidDataError(HTTPException):
    def __init__(self, message: str = "Invalid request data") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
