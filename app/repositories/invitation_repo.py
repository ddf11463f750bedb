from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from app.core.errors import InvitationAlreadyPending, InvitationTokenCollision
from app.models.base import utcnow
from app.models.invitation import Invitation, InvitationStatus


class InvitationRepository:
    """Invitation database operations.

    Status changes are conditional on the status the caller last saw, so
    two requests racing on the same token cannot both win.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["invitations"]

    async def insert(self, invitation: Invitation, session=None) -> Invitation:
        try:
            await self.collection.insert_one(invitation.to_document(), session=session)
        except DuplicateKeyError as exc:
            key_pattern = (exc.details or {}).get("keyPattern") or {}
            if "token" in key_pattern:
                raise InvitationTokenCollision() from exc
            raise InvitationAlreadyPending(
                f"An invitation is already pending for {invitation.email} for this family.",
                context={"family_id": str(invitation.family_id), "email": invitation.email},
            ) from exc
        return invitation

    async def get_by_token(
        self,
        token: str,
        status: Optional[InvitationStatus] = None,
        session=None,
    ) -> Optional[Invitation]:
        query = {"token": token}
        if status is not None:
            query["status"] = status.value
        doc = await self.collection.find_one(query, session=session)
        if doc:
            return Invitation(**doc)
        return None

    async def find_pending(self, family_id: ObjectId, email: str) -> Optional[Invitation]:
        doc = await self.collection.find_one({
            "family_id": family_id,
            "email": email,
            "status": InvitationStatus.PENDING.value
        })
        if doc:
            return Invitation(**doc)
        return None

    async def transition(
        self,
        invitation: Invitation,
        to_status: InvitationStatus,
        session=None,
        **fields,
    ) -> bool:
        """Move the invitation out of the status it was read with.

        Returns False if another request changed the status first.
        """
        now = utcnow()
        updates = {"status": to_status.value, "updated_at": now, **fields}
        result = await self.collection.update_one(
            {"_id": invitation.id, "status": invitation.status.value},
            {"$set": updates},
            session=session
        )
        if result.modified_count == 0:
            return False

        invitation.status = to_status
        invitation.updated_at = now
        for key, value in fields.items():
            setattr(invitation, key, value)
        return True
