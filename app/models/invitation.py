from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from app.models.base import MongoModel, PyObjectId, as_aware
from app.models.family import FamilyRole


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    REVOKED = "revoked"


class Invitation(MongoModel):
    """Token-bound offer of a role in one family to one email address.

    Invitations are never deleted; they double as an audit trail.
    """
    family_id: PyObjectId
    email: str
    role: FamilyRole = FamilyRole.MEMBER
    invited_by: PyObjectId
    token: str = Field(repr=False)
    status: InvitationStatus = InvitationStatus.PENDING
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    accepted_by_user_id: Optional[PyObjectId] = None

    @property
    def is_pending(self) -> bool:
        return self.status == InvitationStatus.PENDING

    def is_expired(self, now: datetime) -> bool:
        return as_aware(self.expires_at) < now
