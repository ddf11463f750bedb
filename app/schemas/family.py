"""Family request/response schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.family import Family, FamilyRole


class FamilyCreate(BaseModel):
    """Create a family."""
    name: str = Field(..., min_length=1, max_length=100)


class FamilySettingsUpdate(BaseModel):
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    timezone: Optional[str] = Field(None, min_length=1, max_length=64)


class FamilyUpdate(BaseModel):
    """Partial family update. At least one field must be sent."""
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    settings: Optional[FamilySettingsUpdate] = None


class MemberAdd(BaseModel):
    """Add an existing user to a family by email."""
    email: str
    role: str = FamilyRole.MEMBER.value


class MemberRoleUpdate(BaseModel):
    """Change a member's role."""
    role: str


class MemberResponse(BaseModel):
    """Member in a family."""
    user_id: str
    role: FamilyRole
    joined_at: datetime
    permissions: List[str] = []


class FamilySettingsResponse(BaseModel):
    currency: str
    timezone: str


class FamilyResponse(BaseModel):
    """Family response schema."""
    id: str
    name: str
    description: Optional[str] = None
    created_by: str
    members: List[MemberResponse]
    settings: FamilySettingsResponse
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_family(cls, family: Family) -> "FamilyResponse":
        return cls(
            id=str(family.id),
            name=family.name,
            description=family.description,
            created_by=str(family.created_by),
            members=[
                MemberResponse(
                    user_id=str(m.user_id),
                    role=m.role,
                    joined_at=m.joined_at,
                    permissions=m.permissions,
                )
                for m in family.members
            ],
            settings=FamilySettingsResponse(**family.settings.model_dump()),
            created_at=family.created_at,
            updated_at=family.updated_at,
        )
