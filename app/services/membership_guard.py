"""
Membership guard.

Pure authorization decisions over a loaded family. ``can_perform`` never
touches the database and never raises; ``ensure_allowed`` turns a denial
into the matching AppError for callers that want to stop right there.

Policy: every mutating operation is reserved to the family creator. The
Admin role exists in the model but grants no extra authority yet.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from bson import ObjectId

from app.core.errors import (
    AppError,
    CannotModifyPrimaryUser,
    CannotRemoveCreator,
    NotFamilyCreator,
    NotFamilyMember,
)
from app.models.family import Family, FamilyRole


class FamilyOperation(str, Enum):
    VIEW_FAMILY = "view_family"
    CREATE_INVITATION = "create_invitation"
    ADD_MEMBER = "add_member"
    UPDATE_FAMILY = "update_family"
    REMOVE_MEMBER = "remove_member"
    CHANGE_MEMBER_ROLE = "change_member_role"


CREATOR_ONLY_OPERATIONS = {
    FamilyOperation.CREATE_INVITATION,
    FamilyOperation.ADD_MEMBER,
    FamilyOperation.UPDATE_FAMILY,
    FamilyOperation.REMOVE_MEMBER,
    FamilyOperation.CHANGE_MEMBER_ROLE,
}


class DenialKind(str, Enum):
    FORBIDDEN = "forbidden"
    BAD_REQUEST = "bad_request"


class DenialReason(str, Enum):
    NOT_A_MEMBER = "not_a_member"
    NOT_CREATOR = "not_creator"
    CREATOR_SELF_REMOVAL = "creator_self_removal"
    TARGET_IS_PRIMARY_USER = "target_is_primary_user"

    @property
    def kind(self) -> DenialKind:
        if self in (DenialReason.NOT_A_MEMBER, DenialReason.NOT_CREATOR):
            return DenialKind.FORBIDDEN
        return DenialKind.BAD_REQUEST


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenialReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: DenialReason) -> "Decision":
        return cls(False, reason)


def can_perform(
    family: Family,
    acting_user_id: ObjectId,
    operation: FamilyOperation,
    target_user_id: Optional[ObjectId] = None,
) -> Decision:
    if operation == FamilyOperation.VIEW_FAMILY:
        if family.is_member(acting_user_id):
            return Decision.allow()
        return Decision.deny(DenialReason.NOT_A_MEMBER)

    if operation in CREATOR_ONLY_OPERATIONS and not family.is_creator(acting_user_id):
        return Decision.deny(DenialReason.NOT_CREATOR)

    if operation == FamilyOperation.REMOVE_MEMBER and target_user_id is not None:
        if target_user_id == acting_user_id or family.is_creator(target_user_id):
            return Decision.deny(DenialReason.CREATOR_SELF_REMOVAL)

    if operation == FamilyOperation.CHANGE_MEMBER_ROLE and target_user_id is not None:
        target = family.find_member(target_user_id)
        if family.is_creator(target_user_id) or (
            target is not None and target.role == FamilyRole.PRIMARY_USER
        ):
            return Decision.deny(DenialReason.TARGET_IS_PRIMARY_USER)

    return Decision.allow()


_DENIAL_ERRORS = {
    DenialReason.NOT_A_MEMBER: NotFamilyMember,
    DenialReason.NOT_CREATOR: NotFamilyCreator,
    DenialReason.CREATOR_SELF_REMOVAL: CannotRemoveCreator,
    DenialReason.TARGET_IS_PRIMARY_USER: CannotModifyPrimaryUser,
}


def denial_error(reason: DenialReason, operation: FamilyOperation, family: Family) -> AppError:
    error_cls = _DENIAL_ERRORS[reason]
    return error_cls(context={"family_id": str(family.id), "operation": operation.value})


def ensure_allowed(
    family: Family,
    acting_user_id: ObjectId,
    operation: FamilyOperation,
    target_user_id: Optional[ObjectId] = None,
) -> None:
    decision = can_perform(family, acting_user_id, operation, target_user_id)
    if not decision.allowed:
        raise denial_error(decision.reason, operation, family)
