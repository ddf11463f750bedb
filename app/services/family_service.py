import logging
from typing import List, Optional

from bson import ObjectId

from app.core.errors import (
    FamilyNotFound,
    InvalidFamilyUpdate,
    UserNotFound,
    ValidationError,
)
from app.models.base import to_object_id, utcnow
from app.models.family import Family, FamilyRole, FamilySettings, parse_assignable_role
from app.repositories.family_repo import FamilyRepository
from app.repositories.user_repo import UserRepository
from app.schemas.family import FamilyUpdate
from app.services.membership_guard import FamilyOperation, ensure_allowed
from app.utils.validation import normalize_email

logger = logging.getLogger(__name__)


class FamilyService:
    """Family aggregate store plus the guarded family operations."""

    def __init__(self, families: FamilyRepository, users: UserRepository):
        self.families = families
        self.users = users

    # Aggregate store

    async def create_family(self, name: str, creator_id, session=None) -> Family:
        """Create a family with the creator enrolled as its Primary User."""
        if not name or not name.strip():
            raise ValidationError("Family name is required")
        creator_id = to_object_id(creator_id, "creator user ID")

        creator = await self.users.get_user_by_id(creator_id, session=session)
        if creator is None:
            raise UserNotFound("Creator user not found")

        family = Family.create(name, creator_id)
        await self.families.insert(family, session=session)
        logger.info("Family %s created by user %s", family.id, creator_id)
        return family

    async def add_member(
        self, family: Family, user_id: ObjectId, role: FamilyRole, session=None
    ) -> Family:
        family.add_member(user_id, role)
        await self.families.save(family, session=session)
        logger.info("User %s joined family %s as %s", user_id, family.id, role.value)
        return family

    async def remove_member(
        self, family: Family, user_id: ObjectId, requested_by: ObjectId, session=None
    ) -> Family:
        family.remove_member(user_id)
        await self.families.save(family, session=session)
        logger.info("User %s removed from family %s by %s", user_id, family.id, requested_by)
        return family

    async def change_member_role(
        self, family: Family, user_id: ObjectId, new_role, session=None
    ) -> Family:
        member = family.change_member_role(user_id, new_role)
        await self.families.save(family, session=session)
        logger.info("Role of user %s in family %s changed to %s", user_id, family.id, member.role.value)
        return family

    async def find_family(self, family_id: ObjectId, session=None) -> Optional[Family]:
        return await self.families.get(family_id, session=session)

    async def require_family(self, family_id, session=None) -> Family:
        family_id = to_object_id(family_id, "Family ID")
        family = await self.families.get(family_id, session=session)
        if family is None:
            raise FamilyNotFound(context={"family_id": str(family_id)})
        return family

    # Guarded operations

    async def list_families(self, user_id) -> List[Family]:
        return await self.families.list_for_user(to_object_id(user_id, "user ID"))

    async def get_family(self, family_id, requested_by) -> Family:
        requested_by = to_object_id(requested_by, "Requesting User ID")
        family = await self.require_family(family_id)
        ensure_allowed(family, requested_by, FamilyOperation.VIEW_FAMILY)
        return family

    async def update_family(self, family_id, update: FamilyUpdate, requested_by) -> Family:
        requested_by = to_object_id(requested_by, "Requesting User ID")
        changes = update.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise InvalidFamilyUpdate("No update data provided (name, description or settings required)")
        if "name" in changes and not changes["name"].strip():
            raise InvalidFamilyUpdate("Family name cannot be empty")

        family = await self.require_family(family_id)
        ensure_allowed(family, requested_by, FamilyOperation.UPDATE_FAMILY)

        if "name" in changes:
            family.name = changes["name"].strip()
        if "description" in changes:
            family.description = changes["description"]
        if "settings" in changes:
            merged = {**family.settings.model_dump(), **changes["settings"]}
            family.settings = FamilySettings(**merged)
        family.updated_at = utcnow()

        await self.families.save(family)
        logger.info("Family %s updated by %s: %s", family.id, requested_by, sorted(changes))
        return family

    async def add_member_direct(self, family_id, email: str, role, requested_by) -> Family:
        """Add an existing user to a family without an invitation."""
        requested_by = to_object_id(requested_by, "Requesting User ID")
        family = await self.require_family(family_id)
        ensure_allowed(family, requested_by, FamilyOperation.ADD_MEMBER)

        email = normalize_email(email)
        role = parse_assignable_role(role)

        user = await self.users.get_user_by_email(email)
        if user is None:
            raise UserNotFound(f"User with email {email} not found.")

        return await self.add_member(family, user.id, role)

    async def remove_member_from_family(self, family_id, member_id, requested_by) -> Family:
        requested_by = to_object_id(requested_by, "Requesting User ID")
        member_id = to_object_id(member_id, "Member User ID")
        family = await self.require_family(family_id)
        ensure_allowed(family, requested_by, FamilyOperation.REMOVE_MEMBER, target_user_id=member_id)

        return await self.remove_member(family, member_id, requested_by)

    async def change_role(self, family_id, member_id, new_role, requested_by) -> Family:
        requested_by = to_object_id(requested_by, "Requesting User ID")
        member_id = to_object_id(member_id, "Member User ID")
        role = parse_assignable_role(new_role)
        family = await self.require_family(family_id)
        ensure_allowed(family, requested_by, FamilyOperation.CHANGE_MEMBER_ROLE, target_user_id=member_id)

        return await self.change_member_role(family, member_id, role)
