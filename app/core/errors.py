"""
Error taxonomy for the family membership and invitation core.

Errors are raised where a problem is detected and travel unchanged to the
HTTP boundary, which renders them with ``status_code``. Each concrete error
belongs to exactly one category:

- ``ValidationError``        malformed input (ids, emails, roles)
- ``NotFoundError``          family / invitation / member / user absent
- ``PermissionDeniedError``  membership guard denial
- ``ConflictError``          already-member, already-pending, already-exists
- ``InvitationStateError``   expired or not-actionable invitation
- ``IntegrityError``         a referenced record is missing; a data bug
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    error_code: str = "app_error"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context or {}
        super().__init__(self.message)


# Categories

class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"
    default_message = "Invalid input"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"
    default_message = "Resource not found"


class PermissionDeniedError(AppError):
    status_code = 403
    error_code = "permission_denied"
    default_message = "You do not have permission to perform this action"


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"
    default_message = "The request conflicts with the current state"


class InvitationStateError(AppError):
    status_code = 400
    error_code = "invitation_state"
    default_message = "Invitation cannot be used"


class IntegrityError(AppError):
    status_code = 500
    error_code = "integrity_error"
    default_message = "Something went wrong. Please try again later."


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_failed"
    default_message = "Could not validate credentials"


# Validation

class InvalidId(ValidationError):
    error_code = "invalid_id"
    default_message = "Invalid ID format"


class InvalidEmail(ValidationError):
    error_code = "invalid_email"
    default_message = "Invalid email format"


class InvalidRole(ValidationError):
    error_code = "invalid_role"
    default_message = "Invalid role"


class InvalidFamilyUpdate(ValidationError):
    error_code = "invalid_family_update"
    default_message = "No update data provided"


class CannotRemoveCreator(ValidationError):
    error_code = "cannot_remove_creator"
    default_message = "Family creator cannot be removed from the family"


class CannotModifyPrimaryUser(ValidationError):
    error_code = "cannot_modify_primary_user"
    default_message = "Cannot change the role of the Primary User"


class UserEmailMismatch(ValidationError):
    error_code = "user_email_mismatch"
    default_message = "Logged-in user email does not match the invitation email"


class EmailMismatch(ValidationError):
    error_code = "email_mismatch"
    default_message = "Registration email does not match the invited email"


# Not found

class FamilyNotFound(NotFoundError):
    error_code = "family_not_found"
    default_message = "Family not found"


class UserNotFound(NotFoundError):
    error_code = "user_not_found"
    default_message = "User not found"


class InvitationNotFound(NotFoundError):
    error_code = "invitation_not_found"
    default_message = "Invitation not found, invalid, or already processed"


class NotAFamilyMember(NotFoundError):
    error_code = "member_not_found"
    default_message = "Member not found in this family"


# Permission

class NotFamilyMember(PermissionDeniedError):
    error_code = "not_family_member"
    default_message = "You are not a member of this family"


class NotFamilyCreator(PermissionDeniedError):
    error_code = "not_family_creator"
    default_message = "Only the family creator can perform this action"


# Conflict

class AlreadyMember(ConflictError):
    error_code = "already_member"
    default_message = "User is already a member of this family"


class InvitationAlreadyPending(ConflictError):
    error_code = "invitation_already_pending"
    default_message = "An invitation is already pending for this email"


class UserAlreadyExists(ConflictError):
    error_code = "user_already_exists"
    default_message = "A user with this email already exists"


class ConcurrentModification(ConflictError):
    error_code = "concurrent_modification"
    default_message = "The record was modified by another request. Please retry."


class InvitationTokenCollision(ConflictError):
    error_code = "invitation_token_collision"
    default_message = "Could not create the invitation. Please retry."


# Invitation state

class InvitationExpired(InvitationStateError):
    error_code = "invitation_expired"
    default_message = "Invitation has expired"


class InvitationNotActionable(InvitationStateError):
    error_code = "invitation_not_actionable"
    default_message = "Invitation can no longer be used"


# Integrity

class FamilyIntegrityError(IntegrityError):
    error_code = "family_integrity_error"


class InvitationFamilyMissing(IntegrityError):
    error_code = "invitation_family_missing"
    status_code = 404


# Authentication

class InvalidCredentials(AuthenticationError):
    error_code = "invalid_credentials"
    default_message = "Invalid email or password"
