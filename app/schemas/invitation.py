"""Invitation request/response schemas."""
from typing import Optional

from pydantic import BaseModel, Field

from app.models.family import FamilyRole
from app.schemas.family import FamilyResponse
from app.schemas.user import UserResponse


class InvitationCreate(BaseModel):
    """Invite an email address into a family."""
    email: str
    role: str = FamilyRole.MEMBER.value


class InvitationCreated(BaseModel):
    message: str
    invitation_id: str


class PublicInvitationDetails(BaseModel):
    """What an unauthenticated client may learn about an invitation token."""
    email: str
    role: FamilyRole
    family_name: str
    is_existing_user: bool


class RegisterAndAccept(BaseModel):
    """Create an account through an invitation link."""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str
    password: str = Field(..., min_length=8, max_length=100)


class InvitationAcceptResponse(BaseModel):
    message: str
    family: FamilyResponse


class RegisterAndAcceptResponse(BaseModel):
    message: str
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
    family: FamilyResponse
    note: Optional[str] = None
