"""
Family aggregate.

A family embeds its membership roster. The roster is only changed through
the methods on ``Family`` so that its invariants hold after every mutation:

- ``user_id`` is unique within ``members``;
- exactly one member holds ``Primary User`` and that member is the creator.

Persistence (and the optimistic ``version`` check) lives in
``FamilyRepository.save``.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, Field

from app.core.errors import (
    AlreadyMember,
    CannotModifyPrimaryUser,
    CannotRemoveCreator,
    FamilyIntegrityError,
    InvalidRole,
    NotAFamilyMember,
)
from app.models.base import MongoModel, PyObjectId, utcnow


class FamilyRole(str, Enum):
    PRIMARY_USER = "Primary User"
    ADMIN = "Admin"
    MEMBER = "Member"


# Only these roles can be granted after the family exists
ASSIGNABLE_ROLES = (FamilyRole.ADMIN, FamilyRole.MEMBER)


def parse_assignable_role(role) -> FamilyRole:
    """Return ``role`` as a FamilyRole if it may be granted, else raise InvalidRole."""
    try:
        parsed = FamilyRole(role)
    except ValueError:
        parsed = None
    if parsed not in ASSIGNABLE_ROLES:
        allowed = ", ".join(r.value for r in ASSIGNABLE_ROLES)
        raise InvalidRole(
            f"Invalid role: {getattr(role, 'value', role)}. Must be one of {allowed}",
            context={"role": str(role)},
        )
    return parsed


# Embedded documents don't need MongoModel (no separate _id)
class FamilyMember(BaseModel):
    user_id: PyObjectId
    role: FamilyRole = FamilyRole.MEMBER
    joined_at: datetime = Field(default_factory=utcnow)
    permissions: List[str] = []


class FamilySettings(BaseModel):
    currency: str = "BDT"
    timezone: str = "Asia/Dhaka"


class Family(MongoModel):
    name: str
    description: Optional[str] = None
    created_by: PyObjectId
    members: List[FamilyMember] = []
    settings: FamilySettings = Field(default_factory=FamilySettings)
    version: int = 0

    @classmethod
    def create(cls, name: str, creator_id: ObjectId) -> "Family":
        """Build a new family with the creator enrolled as Primary User."""
        now = utcnow()
        family = cls(
            name=name.strip(),
            created_by=creator_id,
            members=[
                FamilyMember(
                    user_id=creator_id,
                    role=FamilyRole.PRIMARY_USER,
                    joined_at=now,
                )
            ],
            created_at=now,
            updated_at=now,
        )
        family.check_invariants()
        return family

    def find_member(self, user_id: ObjectId) -> Optional[FamilyMember]:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def is_member(self, user_id: ObjectId) -> bool:
        return self.find_member(user_id) is not None

    def is_creator(self, user_id: ObjectId) -> bool:
        return self.created_by == user_id

    def add_member(self, user_id: ObjectId, role: FamilyRole) -> FamilyMember:
        if self.is_member(user_id):
            raise AlreadyMember(context={"family_id": str(self.id), "user_id": str(user_id)})
        if role == FamilyRole.PRIMARY_USER:
            raise InvalidRole("The Primary User role cannot be granted")

        member = FamilyMember(user_id=user_id, role=role, joined_at=utcnow())
        self.members.append(member)
        self.updated_at = utcnow()
        return member

    def remove_member(self, user_id: ObjectId) -> FamilyMember:
        member = self.find_member(user_id)
        if member is None:
            raise NotAFamilyMember(context={"family_id": str(self.id), "user_id": str(user_id)})
        if self.is_creator(user_id) or member.role == FamilyRole.PRIMARY_USER:
            raise CannotRemoveCreator()

        self.members = [m for m in self.members if m.user_id != user_id]
        self.updated_at = utcnow()
        return member

    def change_member_role(self, user_id: ObjectId, new_role) -> FamilyMember:
        role = parse_assignable_role(new_role)
        member = self.find_member(user_id)
        if member is None:
            raise NotAFamilyMember(context={"family_id": str(self.id), "user_id": str(user_id)})
        if member.role == FamilyRole.PRIMARY_USER or self.is_creator(user_id):
            raise CannotModifyPrimaryUser()

        member.role = role
        self.updated_at = utcnow()
        return member

    def check_invariants(self) -> None:
        """Raise FamilyIntegrityError if the roster is inconsistent."""
        user_ids = [m.user_id for m in self.members]
        if len(set(user_ids)) != len(user_ids):
            raise FamilyIntegrityError(
                "Duplicate member entries", context={"family_id": str(self.id)}
            )

        primaries = [m for m in self.members if m.role == FamilyRole.PRIMARY_USER]
        if len(primaries) != 1 or primaries[0].user_id != self.created_by:
            raise FamilyIntegrityError(
                "Family must have exactly one Primary User, its creator",
                context={"family_id": str(self.id)},
            )
