from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.errors import ConcurrentModification
from app.models.family import Family


class FamilyRepository:
    """Family database operations.

    Saves are optimistic: a replace only applies if the stored ``version``
    still matches the one the aggregate was loaded with.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["families"]

    async def insert(self, family: Family, session=None) -> Family:
        family.check_invariants()
        await self.collection.insert_one(family.to_document(), session=session)
        return family

    async def get(self, family_id: ObjectId, session=None) -> Optional[Family]:
        doc = await self.collection.find_one({"_id": family_id}, session=session)
        if doc:
            return Family(**doc)
        return None

    async def list_for_user(self, user_id: ObjectId) -> List[Family]:
        """List families the user belongs to."""
        cursor = self.collection.find({"members.user_id": user_id}).sort("created_at", 1)
        docs = await cursor.to_list(None)
        return [Family(**doc) for doc in docs]

    async def save(self, family: Family, session=None) -> Family:
        """Persist the whole aggregate if nobody else changed it meanwhile."""
        family.check_invariants()
        expected_version = family.version

        doc = family.to_document()
        doc["version"] = expected_version + 1
        result = await self.collection.replace_one(
            {"_id": family.id, "version": expected_version},
            doc,
            session=session
        )
        if result.matched_count == 0:
            raise ConcurrentModification(context={"family_id": str(family.id)})

        family.version = expected_version + 1
        return family
